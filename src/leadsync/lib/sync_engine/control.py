"""In-process pause/cancel token checked by the controller at chunk boundaries."""

from leadsync.lib.sync_engine.state import ControlRequest


class ControlToken:
    """Cooperative control flag shared between a running job and its supervisor.

    A cancel request always wins over a pause request.
    """

    def __init__(self) -> None:
        self._request: ControlRequest | None = None

    @property
    def requested(self) -> ControlRequest | None:
        return self._request

    def request_pause(self) -> None:
        if self._request is None:
            self._request = ControlRequest.PAUSE

    def request_cancel(self) -> None:
        self._request = ControlRequest.CANCEL

    def clear(self) -> None:
        self._request = None
