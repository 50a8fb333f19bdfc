"""
   内容三缓冲（snapshot / working / draft）操作的业务异常。
   纯比较函数不会抛出这些异常；只有改写缓冲的操作才会。
"""

class ContentError(Exception):
    """Base for all content reconciliation errors."""

class EntityNotFoundError(ContentError):
    """Product/article id does not exist for this tenant."""

class NoDraftError(ContentError):
    """Accept/reject requested but the entity has no draft."""

class DraftFieldMissingError(ContentError):
    """The draft holds no usable value for the requested field."""

class InvalidResolutionError(ContentError):
    """Conflict resolution action is not keep_local / use_store / merge."""
