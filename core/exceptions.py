class AASIndexError(Exception):
    """Base exception for the AAS index application"""
    status_code = 500


class ConfigurationError(AASIndexError):
    """Configuration related errors"""
    pass


class EndpointConnectionError(AASIndexError):
    """Opening or reading an endpoint failed"""
    pass


class APIError(EndpointConnectionError):
    """External API errors"""
    def __init__(self, service: str, status_code: int, message: str):
        self.service = service
        self.http_status = status_code
        super().__init__(f"{service} API error (HTTP {status_code}): {message}")


class IndexStoreError(AASIndexError):
    """Index persistence errors"""
    pass


class EndpointNotFoundError(IndexStoreError):
    status_code = 404

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"An endpoint with the name '{name}' does not exist.")


class DocumentNotFoundError(IndexStoreError):
    status_code = 404

    def __init__(self, uuid: str):
        self.uuid = uuid
        super().__init__(f"A document with the uuid '{uuid}' does not exist.")


class ValidationError(AASIndexError):
    """Malformed request"""
    status_code = 422


class AuthorizationError(AASIndexError):
    """Unauthorized access"""
    status_code = 401


class InternalError(AASIndexError):
    """Unexpected failure"""
    status_code = 500
