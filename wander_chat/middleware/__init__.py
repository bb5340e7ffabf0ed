from wander_chat.middleware.request_context import bind_request, bind_user, configure_logging, current_request_id

__all__ = ["bind_request", "bind_user", "configure_logging", "current_request_id"]
