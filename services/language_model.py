"""Language Model Module

The conversation core only sees one capability:

    generate(system_prompt, history, tools) -> ModelResult(text, tool_calls)

`GeminiLanguageModel` implements it on google-generativeai, running the
function-calling loop itself so tool execution (and its gate re-check) stays
in our code. `generate_with_timeout` bounds a call so a hung model never
holds a conversation lock indefinitely.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence
import google.generativeai as genai
from config.llm import get_gemini_model
from config.settings import (
    GEMINI_MODEL_NAME,
    GOOGLE_API_KEY,
    MAX_TOOL_ROUNDS,
    MODEL_CALL_WORKERS,
    MODEL_TIMEOUT_SECONDS,
)
from core.errors import ModelCallError

logger = logging.getLogger(__name__)


class Tool(Protocol):
    """A capability the model may call."""
    name: str
    description: str
    parameters: Dict[str, Any]

    def execute(self, **kwargs) -> Dict[str, Any]:
        ...


@dataclass
class ToolCall:
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    result: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ModelResult:
    text: str
    tool_calls: List[ToolCall] = field(default_factory=list)


class LanguageModel(Protocol):
    def generate(self, system_prompt: str, history: List[Dict[str, str]],
                 tools: Sequence[Tool] = ()) -> ModelResult:
        ...


def _to_plain(value: Any) -> Any:
    """Convert proto map/repeated containers from function-call args into plain Python."""
    if hasattr(value, "items"):
        return {k: _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)) or (hasattr(value, "__iter__") and not isinstance(value, (str, bytes))):
        return [_to_plain(v) for v in value]
    return value


class GeminiLanguageModel:
    """Gemini-backed LanguageModel with manual function calling."""

    def __init__(self, model_name: str = GEMINI_MODEL_NAME,
                 timeout: float = MODEL_TIMEOUT_SECONDS,
                 max_tool_rounds: int = MAX_TOOL_ROUNDS):
        self.model_name = model_name
        self.timeout = timeout
        self.max_tool_rounds = max_tool_rounds

    def generate(self, system_prompt: str, history: List[Dict[str, str]],
                 tools: Sequence[Tool] = ()) -> ModelResult:
        if not history or history[-1].get("role") != "user":
            raise ModelCallError("History must end with a user message")

        declarations = None
        if tools:
            declarations = [{
                "function_declarations": [
                    {"name": t.name, "description": t.description, "parameters": t.parameters}
                    for t in tools
                ]
            }]

        model = get_gemini_model(self.model_name, system_instruction=system_prompt, tools=declarations)
        if model is None:
            raise ModelCallError("Gemini model is not configured")

        contents = [
            {"role": "model" if m["role"] != "user" else "user", "parts": [m["content"]]}
            for m in history
        ]
        chat = model.start_chat(history=contents[:-1])
        request_options = {"timeout": self.timeout}
        tools_by_name = {t.name: t for t in tools}
        tool_calls: List[ToolCall] = []

        response = chat.send_message(contents[-1]["parts"][0], request_options=request_options)

        for _ in range(self.max_tool_rounds):
            function_calls = [
                part.function_call
                for part in response.candidates[0].content.parts
                if getattr(part, "function_call", None) and part.function_call.name
            ]
            if not function_calls:
                break

            response_parts = []
            for fc in function_calls:
                arguments = _to_plain(fc.args) if fc.args else {}
                tool = tools_by_name.get(fc.name)
                if tool is None:
                    result = {"error": f"Unknown tool {fc.name}"}
                else:
                    result = tool.execute(**arguments)
                tool_calls.append(ToolCall(name=fc.name, arguments=arguments, result=result))
                response_parts.append(genai.protos.Part(
                    function_response=genai.protos.FunctionResponse(name=fc.name, response=result)
                ))

            response = chat.send_message(
                genai.protos.Content(role="user", parts=response_parts),
                request_options=request_options,
            )

        text = "".join(
            part.text for part in response.candidates[0].content.parts
            if getattr(part, "text", None)
        )
        return ModelResult(text=text.strip(), tool_calls=tool_calls)


def generate_with_timeout(model: LanguageModel, system_prompt: str,
                          history: List[Dict[str, str]], tools: Sequence[Tool] = (),
                          timeout: float = MODEL_TIMEOUT_SECONDS) -> ModelResult:
    """Run `model.generate` bounded by `timeout`. Any failure surfaces as ModelCallError.

    Calls share one bounded worker pool, so calls that outlive their timeout
    can never hold more than MODEL_CALL_WORKERS threads.
    """
    future = get_model_executor().submit(model.generate, system_prompt, history, tools)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout as e:
        future.cancel()
        raise ModelCallError(f"Model call timed out after {timeout:g}s") from e
    except ModelCallError:
        raise
    except Exception as e:
        raise ModelCallError(f"Model call failed: {e}") from e


# Global instance
_model_executor = None
_executor_guard = threading.Lock()


def get_model_executor() -> ThreadPoolExecutor:
    """Get or create the shared pool that runs model calls."""
    global _model_executor
    with _executor_guard:
        if _model_executor is None:
            _model_executor = ThreadPoolExecutor(
                max_workers=MODEL_CALL_WORKERS, thread_name_prefix="model-call"
            )
        return _model_executor


def get_language_model() -> Optional[LanguageModel]:
    """Gemini-backed model, or None when no API key is configured (fallback mode)."""
    if not GOOGLE_API_KEY:
        logger.warning("GOOGLE_API_KEY not set. Conversation core will use fallback mode.")
        return None
    return GeminiLanguageModel()
