"""research_assistant/invoker.py

Bounded-time calls to the Ollama generation backend.

The invoker never raises.  Timeouts and transport failures are folded into a
:class:`ModelOutput` whose text is a synthetic ``{"error": ...}`` payload, so
downstream stages always receive parseable-looking text.
"""

from __future__ import annotations

# Standard Library
import json
import logging
import time
from typing import Any

# Third-Party Libraries
import httpx
from ollama import Client, ResponseError

# Local Modules
from research_assistant.models import ModelOutput, SamplingParams

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S: float = 180.0

# Keeps the model from inventing further question/answer pairs.
STOP_SEQUENCES: tuple[str, ...] = ("Q:",)


def _error_text(message: str) -> str:
    return json.dumps({"error": message})


def _response_text(raw: Any) -> str:
    """Pull the generated text out of an Ollama generate response.

    getattr covers the real pydantic ``GenerateResponse``; plain dicts (as
    returned by mocks or older clients) fall through to ``.get``.
    """
    text = getattr(raw, "response", None)
    if text is None and isinstance(raw, dict):
        text = raw.get("response")
    return text or ""


class ModelInvoker:
    """Issues one generate request per call with a hard time budget.

    The budget is an httpx read timeout on the HTTP client.  With
    ``stream=False`` Ollama sends nothing until generation completes, so the
    read limit bounds the whole call.  When it expires the in-flight request
    is abandoned and a timeout-shaped output is returned.
    """

    def __init__(
        self,
        model: str = "llama3",
        ollama_host: str = "http://localhost:11434",
        timeout_s: float = DEFAULT_TIMEOUT_S,
        client: Client | None = None,
    ) -> None:
        """Initialize the invoker.

        Args:
            model: Ollama model tag used for generation.
            ollama_host: Ollama API endpoint.
            timeout_s: Per-read budget for one call, in seconds; applied to
                connect, read, write and pool waits alike.
            client: Pre-built Ollama client.  Built from ``ollama_host`` and
                ``timeout_s`` when omitted.
        """
        self.model = model
        self.ollama_host = ollama_host
        self.timeout_s = timeout_s
        self.client = client or Client(host=ollama_host, timeout=httpx.Timeout(timeout_s))

    def invoke(
        self,
        prompt: str,
        sampling: SamplingParams,
        structured: bool = False,
    ) -> ModelOutput:
        """Generate a completion for ``prompt``.

        Args:
            prompt: Full prompt text.
            sampling: Temperature / top-p / top-k, passed through unmodified.
            structured: Request the backend's JSON output mode.  Best effort
                only; the result still has to be extracted and validated.

        Returns:
            A :class:`ModelOutput`.  Never raises.
        """
        options: dict[str, Any] = {
            "temperature": sampling.temperature,
            "top_p": sampling.top_p,
            "top_k": sampling.top_k,
            "stop": list(STOP_SEQUENCES),
        }
        logger.info(
            "[invoker] model=%r structured=%s prompt_chars=%d",
            self.model,
            structured,
            len(prompt),
        )
        started = time.perf_counter()
        try:
            raw = self.client.generate(
                model=self.model,
                prompt=prompt,
                stream=False,
                format="json" if structured else "",
                options=options,
            )
        except httpx.TimeoutException as exc:
            elapsed = time.perf_counter() - started
            message = f"Model call exceeded the {self.timeout_s:g}s budget"
            logger.warning("[invoker] timed out after %.1fs: %s", elapsed, exc)
            return ModelOutput(text=_error_text(message), timed_out=True, error_message=message)
        except ResponseError as exc:
            message = f"Backend error ({exc.status_code}): {exc.error}"
            logger.error("[invoker] %s", message)
            return ModelOutput(text=_error_text(message), error_message=message)
        except (httpx.HTTPError, ConnectionError) as exc:
            message = f"Backend unreachable: {exc}"
            logger.error("[invoker] %s", message)
            return ModelOutput(text=_error_text(message), error_message=message)
        except Exception as exc:
            message = f"Unexpected backend failure: {exc}"
            logger.error("[invoker] %s", message, exc_info=True)
            return ModelOutput(text=_error_text(message), error_message=message)

        text = _response_text(raw)
        logger.info(
            "[invoker] response chars=%d in %.2fs",
            len(text),
            time.perf_counter() - started,
        )
        logger.debug("[invoker] raw=%r", text[:300])
        return ModelOutput(text=text)
