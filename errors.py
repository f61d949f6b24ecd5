class AppError(Exception):
    status_code = 500
    public_message = None

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def client_message(self) -> str:
        return self.public_message or self.message

class ValidationError(AppError):
    status_code = 400

class NotFound(AppError):
    status_code = 404

class StorageError(AppError):
    """Unexpected database failure; details stay in the server log."""
    status_code = 500
    public_message = "Внутренняя ошибка хранилища"
