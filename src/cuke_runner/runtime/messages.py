"""Structured message stream.

`MessageFormatter` turns run events into envelope models suitable for a
newline-delimited JSON stream consumed by external tooling. Every
envelope is delivered to a `MessageSink`; rendering or writing the
stream is up to the sink.

Each attempt of a scenario gets its own `TestCaseStarted` and
`TestCaseFinished` pair, carrying the zero-based attempt index and the
`will_be_retried` flag. Inline attachments are emitted with base64
content encoding for binary payloads; external attachments carry only a
URL reference.
"""

from base64 import b64encode
from datetime import datetime  # noqa: TC003
from inspect import isawaitable
from typing import TYPE_CHECKING, Any, ClassVar, Literal, Protocol

from pydantic import ConfigDict
from pydantic.alias_generators import to_camel

from cuke_runner.models import SchemaModel
from cuke_runner.schema import Status  # noqa: TC001

from .events import Formatter, utcnow

if TYPE_CHECKING:
    from cuke_runner.schema import Attachment as StepAttachment
    from cuke_runner.schema import RunResult, ScenarioResult

if TYPE_CHECKING:
    from .events import RunStarted, ScenarioStarted, StepFinished


class Message(SchemaModel):
    """Base envelope payload, serialized with camelCase field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    #: Envelope key of the message.
    envelope_key: ClassVar[str]

    def envelope(self) -> dict[str, Any]:
        """Serialize as `{envelopeKey: payload}`."""
        return {
            self.envelope_key: self.model_dump(
                mode='json',
                by_alias=True,
                exclude_none=True,
            ),
        }


class TestRunStarted(Message):
    envelope_key = 'testRunStarted'
    __test__ = False

    id: str
    timestamp: datetime


class TestCaseStarted(Message):
    envelope_key = 'testCaseStarted'
    __test__ = False

    id: str
    test_case_id: str
    name: str
    attempt: int
    timestamp: datetime


class TestStepFinished(Message):
    envelope_key = 'testStepFinished'
    __test__ = False

    test_case_started_id: str
    step: str
    status: Status
    duration: float
    message: str | None = None


class Attachment(Message):
    envelope_key = 'attachment'

    test_case_started_id: str
    step: str
    body: str
    content_encoding: Literal['IDENTITY', 'BASE64']
    media_type: str
    file_name: str | None = None


class ExternalAttachment(Message):
    envelope_key = 'externalAttachment'

    test_case_started_id: str
    step: str
    url: str
    media_type: str


class TestCaseFinished(Message):
    envelope_key = 'testCaseFinished'
    __test__ = False

    test_case_started_id: str
    status: Status
    will_be_retried: bool
    timestamp: datetime


class TestRunFinished(Message):
    envelope_key = 'testRunFinished'
    __test__ = False

    test_run_started_id: str | None = None
    success: bool
    timestamp: datetime


class MessageSink(Protocol):
    """Receiver of envelopes; `emit` may return an awaitable."""

    def emit(self, message: Message) -> object:
        ...  # pragma: no cover


def started_id(scenario_id: str, attempt: int) -> str:
    """Identifier of one attempt of a test case."""
    return f'{scenario_id}@{attempt}'


def encode_attachment(attachment: 'StepAttachment', *, started: str,
                      step: str) -> Attachment | ExternalAttachment:
    """Build the envelope of a step attachment."""
    if attachment.is_external:
        return ExternalAttachment(
            test_case_started_id=started,
            step=step,
            url=attachment.url or '',
            media_type=attachment.media_type,
        )

    body = attachment.body
    if isinstance(body, bytes):
        return Attachment(
            test_case_started_id=started,
            step=step,
            body=b64encode(body).decode('ascii'),
            content_encoding='BASE64',
            media_type=attachment.media_type,
            file_name=attachment.file_name,
        )

    return Attachment(
        test_case_started_id=started,
        step=step,
        body=body or '',
        content_encoding='IDENTITY',
        media_type=attachment.media_type,
        file_name=attachment.file_name,
    )


class MessageFormatter(Formatter):
    """Formatter converting run events into envelopes for a sink."""

    def __init__(self, sink: MessageSink) -> None:
        self.sink = sink
        self.run_id: str | None = None

    async def send(self, message: Message) -> None:
        outcome = self.sink.emit(message)
        if isawaitable(outcome):
            await outcome

    async def on_run_start(self, event: 'RunStarted') -> None:
        self.run_id = event.run_id
        await self.send(TestRunStarted(id=event.run_id, timestamp=event.started_at))

    async def on_scenario_start(self, event: 'ScenarioStarted') -> None:
        await self.send(TestCaseStarted(
            id=started_id(event.scenario.id, event.attempt),
            test_case_id=event.scenario.id,
            name=event.scenario.name,
            attempt=event.attempt,
            timestamp=event.started_at,
        ))

    async def on_step_finish(self, event: 'StepFinished') -> None:
        started = started_id(event.scenario.id, event.attempt)
        result = event.result

        for attachment in result.attachments:
            await self.send(encode_attachment(
                attachment,
                started=started,
                step=result.step.label,
            ))

        await self.send(TestStepFinished(
            test_case_started_id=started,
            step=result.step.label,
            status=result.status,
            duration=result.duration,
            message=result.error or result.reason,
        ))

    async def on_scenario_finish(self, result: 'ScenarioResult') -> None:
        await self.send(TestCaseFinished(
            test_case_started_id=started_id(result.scenario.id, result.attempt),
            status=result.status,
            will_be_retried=result.will_be_retried,
            timestamp=utcnow(),
        ))

    async def on_run_finish(self, result: 'RunResult') -> None:
        await self.send(TestRunFinished(
            test_run_started_id=self.run_id,
            success=result.is_clean,
            timestamp=utcnow(),
        ))
