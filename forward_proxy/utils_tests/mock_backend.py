import inspect

import httpx


def backend_response(status_code=200, headers=None, body=b""):
    """A backend response whose body is still an unread stream, like one off the wire."""
    return httpx.Response(
        status_code, headers=headers or [], stream=httpx.ByteStream(body)
    )


class RecordingBackend:
    """Stands in for the backend: records every outbound request and answers via ``handler``."""

    def __init__(self):
        self.requests = []
        self.handler = lambda request: backend_response(200, body=b"ok")

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        result = self.handler(request)
        if inspect.isawaitable(result):
            result = await result
        return result
