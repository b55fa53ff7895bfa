"""HTTP transport: the streaming chat endpoint and health checks."""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Mapping

from aiohttp import web

from docchat.collaborators import Authenticator
from docchat.errors import AuthError, ValidationError
from docchat.orchestrator import Rejection, RequestOrchestrator
from docchat.sanitize import MAX_INPUT_LENGTH, sanitize_input

logger = logging.getLogger(__name__)

HealthCheck = Callable[[], Awaitable[bool]]

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def _parse_chat_body(data: object, max_question_length: int = MAX_INPUT_LENGTH) -> tuple[str, str]:
    """Extract question and session ID from a request body.

    The question is stripped of markup, whitespace-collapsed and truncated.

    Raises:
        ValidationError: If either is missing or not a string
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    question = data.get("question")
    if isinstance(question, str):
        question = sanitize_input(question, max_question_length)
    if not isinstance(question, str) or not question:
        raise ValidationError("Question is required")

    session_id = data.get("sessionId")
    if not isinstance(session_id, str) or not session_id.strip():
        raise ValidationError("Session ID is required")

    return question, session_id.strip()


class WebServer:
    """HTTP server for the chat API."""

    def __init__(
        self,
        orchestrator: RequestOrchestrator,
        authenticator: Authenticator,
        host: str = "0.0.0.0",
        port: int = 3000,
        health_checks: Mapping[str, HealthCheck] | None = None,
        max_question_length: int = MAX_INPUT_LENGTH,
    ):
        """Initialize web server.

        Args:
            orchestrator: Request pipeline
            authenticator: Resolves the caller from request headers
            host: Bind address
            port: Bind port
            health_checks: Named dependency checks reported by /health
            max_question_length: Questions are truncated to this many characters
        """
        self.orchestrator = orchestrator
        self.authenticator = authenticator
        self.host = host
        self.port = port
        self.health_checks = dict(health_checks or {})
        self.max_question_length = max_question_length
        self.app = web.Application()
        self._setup_routes()
        logger.info(f"Web server initialized on port {port}")

    def _setup_routes(self):
        """Set up HTTP routes."""
        self.app.router.add_get("/", self._handle_health)
        self.app.router.add_get("/health", self._handle_health)
        self.app.router.add_post("/query", self._handle_chat)
        logger.info("Routes configured: /, /health, /query")

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        checks = {}
        for name, check in self.health_checks.items():
            try:
                checks[name] = await check()
            except Exception as e:
                logger.warning(f"Health check {name} raised: {e}")
                checks[name] = False

        status = "healthy" if all(checks.values()) else "degraded"
        return web.json_response({"status": status, "service": "docchat", "checks": checks})

    async def _handle_chat(self, request: web.Request) -> web.StreamResponse:
        """Answer a question as a server-sent event stream.

        Expects JSON: {"question": "...", "sessionId": "..."}
        """
        try:
            principal = await self.authenticator.authenticate(request.headers)
        except AuthError as e:
            return web.json_response({"error": e.message}, status=e.status_code)

        try:
            data = await request.json()
            question, session_id = _parse_chat_body(data, self.max_question_length)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return web.json_response({"error": "Invalid JSON body"}, status=400)
        except ValidationError as e:
            return web.json_response({"error": e.message}, status=e.status_code)

        try:
            outcome = await self.orchestrator.admit(question, session_id, principal)
        except Exception as e:
            logger.error(f"Error admitting chat request: {e}", exc_info=True)
            return web.json_response({"error": "Internal server error"}, status=500)

        if isinstance(outcome, Rejection):
            return self._rejection_response(outcome)

        channel = self.orchestrator.open_stream(outcome)
        response = web.StreamResponse(status=200, headers=SSE_HEADERS)
        try:
            await response.prepare(request)
            async for event in channel:
                await response.write(event.to_sse())
            await response.write_eof()
        except ConnectionResetError:
            logger.info(f"Client disconnected from session {outcome.session_id}")
            channel.cancel()
        except asyncio.CancelledError:
            channel.cancel()
            raise
        return response

    @staticmethod
    def _rejection_response(rejection: Rejection) -> web.Response:
        body = {"error": rejection.message}
        headers = {}
        if rejection.reset_at is not None:
            body["resetTime"] = rejection.reset_at.isoformat()
            headers["Retry-After"] = str(rejection.retry_after())
        return web.json_response(body, status=rejection.status_code, headers=headers)

    async def start(self):
        """Start the web server."""
        runner = web.AppRunner(self.app)
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        await site.start()
        logger.info(f"Web server started on port {self.port}")
        logger.info(f"Chat endpoint: http://localhost:{self.port}/query")
        return runner

    async def stop(self, runner):
        """Stop the web server."""
        await runner.cleanup()
        logger.info("Web server stopped")
