"""
Core Application - Infrastructure & Base Classes

This app contains infrastructure code shared by the domain apps
(authentication, chat). It holds no business logic of its own.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - SoftDeleteMixin: Soft delete support (is_deleted, deleted_at)

Managers (import from core.managers):
    - SoftDeleteQuerySet: active() / deleted() filters

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes and HTTP status
    - ValidationError, AuthenticationError, PermissionDeniedError,
      NotFoundError, ServerError
    - envelope_exception_handler: DRF exception handler for the envelope

Responses and pagination (import from core.responses / core.pagination):
    - success_response / error_response: {success, message, data} envelope
    - PageLimitPagination: ?page= / ?limit= pages inside the envelope

Views (import from core.views):
    - health_check: Database, cache and channel layer status

Note:
    Nothing is re-exported here. Models and mixins depend on the app
    registry, so import every name from its own module.
"""
