"""Per-attempt execution context.

A fresh world is created by the world factory at the start of every
scenario attempt and passed to every step handler and case or step hook
of that attempt. Worlds are never shared between attempts or scenarios.

Handlers and hooks attach content to the step being executed with
`attach` and `attach_url`. The current step is tracked with a context
variable, so attachments land on the right step even when scenarios run
concurrently.
"""

from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

from cuke_runner.schema import Attachment

if TYPE_CHECKING:
    from collections.abc import Callable

#: Factory creating the world of one attempt.
type WorldFactory = Callable[[], Any]

#: Attachments collected for the step currently being executed.
current_attachments: ContextVar[list[Attachment] | None] = ContextVar(
    'current_attachments',
    default=None,
)


class World(dict[str, Any]):
    """Default world: a dictionary with attribute access.

    Example::

        world.result = 5
        assert world['result'] == 5
    """

    def __getattr__(self, name: str) -> Any:  # noqa: ANN401
        try:
            return self[name]
        except KeyError as base:
            raise AttributeError(name) from base

    def __setattr__(self, name: str, value: Any) -> None:  # noqa: ANN401
        self[name] = value

    def __delattr__(self, name: str) -> None:
        try:
            del self[name]
        except KeyError as base:
            raise AttributeError(name) from base


def _collect(attachment: Attachment) -> Attachment:
    """Add an attachment to the current step.

    Raises:
        RuntimeError: If called outside a step handler or hook.
    """
    attachments = current_attachments.get()
    if attachments is None:
        raise RuntimeError('Attachments can only be added while a step is running')

    attachments.append(attachment)

    return attachment


def attach(body: str | bytes, media_type: str = 'text/plain',
           file_name: str | None = None) -> Attachment:
    """Attach inline content to the current step.

    Args:
        body: Text or binary content.
        media_type: Media type of the content.
        file_name: Optional suggested file name.

    Returns:
        The recorded attachment.

    Raises:
        RuntimeError: If called outside a step handler or hook.
    """
    return _collect(Attachment(body=body, media_type=media_type, file_name=file_name))


def attach_url(url: str, media_type: str = 'text/uri-list') -> Attachment:
    """Attach a reference to external content to the current step.

    Raises:
        RuntimeError: If called outside a step handler or hook.
    """
    return _collect(Attachment(url=url, media_type=media_type))
