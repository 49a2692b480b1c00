"""SQS client lifecycle for the queue worker."""

from typing import Any, Optional

from aiobotocore.session import AioSession


class QueueConnection:
    """Owns one aiobotocore SQS client, created on first use."""

    def __init__(
        self,
        region_name: Optional[str] = None,
        session: Optional[AioSession] = None,
        **client_kwargs: Any,
    ):
        self._region = region_name
        self._session = session or AioSession()
        self._client_kwargs = client_kwargs
        self._client: Any = None
        self._client_cm: Any = None

    async def get_client(self) -> Any:
        if self._client is None:
            self._client_cm = self._session.create_client(
                "sqs",
                region_name=self._region,
                **self._client_kwargs,
            )
            self._client = await self._client_cm.__aenter__()
        return self._client

    async def close(self) -> None:
        if self._client_cm is not None:
            await self._client_cm.__aexit__(None, None, None)
            self._client_cm = None
            self._client = None
