from fastapi import status


class AppError(Exception):
	"""Base for errors that map onto a structured API response."""

	status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
	default_message = "Internal server error"
	# Provider and repository details stay in the logs
	expose_message = True

	def __init__(self, message: str = None):
		self.message = message or self.default_message
		super().__init__(self.message)


class ValidationError(AppError):
	status_code = status.HTTP_400_BAD_REQUEST
	default_message = "Invalid request"


class AuthenticationError(AppError):
	status_code = status.HTTP_401_UNAUTHORIZED
	default_message = "Invalid token"


class AuthorizationError(AppError):
	status_code = status.HTTP_403_FORBIDDEN
	default_message = "Not authorized to access this document"


class NotFoundError(AppError):
	status_code = status.HTTP_404_NOT_FOUND
	default_message = "Document not found"


class ConflictError(AppError):
	status_code = status.HTTP_409_CONFLICT
	default_message = "Resource already exists"


class StorageError(AppError):
	status_code = status.HTTP_502_BAD_GATEWAY
	default_message = "Storage service failure"
	expose_message = False


class PersistenceError(AppError):
	status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
	default_message = "Failed to save document"
	expose_message = False


class ExtractionError(AppError):
	# Never surfaces to callers; the pipeline degrades instead.
	default_message = "Extraction failed"
