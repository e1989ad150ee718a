"""Error taxonomy for the audio share service.

Every message here is shown to end users as-is, so none of them carry
internal details (paths, bucket names, backend exception text).
"""


class AudioShareError(Exception):
    status_code = 500
    message = "Something went wrong"

    def __init__(self, message: str = None):
        self.message = message or self.message
        super().__init__(self.message)


class ClientInputError(AudioShareError):
    status_code = 400
    message = "Invalid request"


class EmptyPayload(ClientInputError):
    message = "No audio data received"


class MissingToken(ClientInputError):
    message = "Missing token"


class RangeNotSatisfiable(ClientInputError):
    status_code = 416
    message = "Invalid range"


class CapacityError(AudioShareError):
    status_code = 413
    message = "Payload too large"


class PayloadTooLarge(CapacityError):
    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes
        super().__init__(f"Audio file too large (max {max_bytes / (1024 * 1024):g} MB)")


class NotFoundOrExpired(AudioShareError):
    status_code = 404
    message = "This audio is no longer available."


class TransientStoreError(AudioShareError):
    """The backing medium failed. Surfaces as 500 on upload only."""
    status_code = 500
    message = "Upload failed"
