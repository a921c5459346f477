from activity_report.api.deps.auth import (
    get_session_context,
    get_session_store,
    require_authorization,
)

__all__ = ["get_session_context", "get_session_store", "require_authorization"]
