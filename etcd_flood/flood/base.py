from typing import Protocol


class LoadGenerator(Protocol):
    """Anything that drives traffic against a ready cluster."""

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...
