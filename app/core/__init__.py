"""
Core Application - Infrastructure & Base Classes

This app contains infrastructure code shared by the domain apps:

- Generic, reusable base classes (no chat-specific logic)
- Clear extension points for domain apps
- Infrastructure concerns separated from business logic

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key

Services (import from core.services):
    - BaseService: Base class for service layer (logging, transactions)

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ValidationError: Malformed input
    - NotFoundError: Resource not found
    - PermissionDeniedError: Authorization failures
    - ConflictError: Concurrent-creation conflicts
    - StorageError: Persistence failures

Protocols (import from core.protocols):
    - PushTransport: Per-identity and public push delivery interface
"""
