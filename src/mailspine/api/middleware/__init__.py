"""HTTP middleware."""

from mailspine.api.middleware.request_id import RequestIDMiddleware

__all__ = ["RequestIDMiddleware"]
