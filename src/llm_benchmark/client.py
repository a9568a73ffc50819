"""
Inference client contract and an Amazon Bedrock implementation using the
Converse API.
"""

import re
from typing import Any, Dict, List, Optional, Protocol

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from .backoff import BackoffHandler, error_code
from .errors import AuthError, CapacityError, TransportError
from .models import InferenceResult, TokenUsage
from .logging import get_logger


logger = get_logger(__name__)


AUTH_ERROR_CODES = frozenset({
    'AccessDeniedException',
    'UnrecognizedClientException',
    'ExpiredTokenException',
    'InvalidSignatureException',
})
CAPACITY_ERROR_CODES = frozenset({'ServiceQuotaExceededException'})

# Validation messages Bedrock returns when a request does not fit the model's
# token budget.
_TOKEN_LIMIT_MESSAGE = re.compile(r"max_?tokens|too many (?:input )?tokens|token limit|context length", re.IGNORECASE)

PARAMETER_NAMES = {
    "temperature": "temperature",
    "max_tokens": "maxTokens",
    "top_p": "topP",
    "stop_sequences": "stopSequences",
}


class InferenceClient(Protocol):
    """
    Anything that can run one chat completion.

    Implementations raise CapacityError, AuthError or TransportError.
    """

    async def invoke(
        self,
        model_id: str,
        messages: List[Dict[str, str]],
        parameters: Dict[str, Any]
    ) -> InferenceResult:
        ...


def to_converse_request(
    model_id: str,
    messages: List[Dict[str, str]],
    parameters: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Build Converse API keyword arguments from chat messages.

    System messages are lifted into the ``system`` field; unknown parameters
    are dropped.
    """
    request_params: Dict[str, Any] = {
        "modelId": model_id,
        "messages": [
            {"role": message["role"], "content": [{"text": message["content"]}]}
            for message in messages
            if message.get("role") != "system"
        ],
    }

    system = [{"text": message["content"]} for message in messages if message.get("role") == "system"]
    if system:
        request_params["system"] = system

    inference_config = {
        converse_name: parameters[name]
        for name, converse_name in PARAMETER_NAMES.items()
        if parameters and parameters.get(name) is not None
    }
    if inference_config:
        request_params["inferenceConfig"] = inference_config

    return request_params


def map_client_error(error: ClientError) -> Exception:
    """Translate a botocore ClientError into the toolkit's error taxonomy."""
    code = error_code(error)
    message = error.response.get('Error', {}).get('Message', str(error))

    if code in AUTH_ERROR_CODES:
        return AuthError(f"{code}: {message}")
    if code in CAPACITY_ERROR_CODES:
        return CapacityError(f"{code}: {message}")
    if code == 'ValidationException' and _TOKEN_LIMIT_MESSAGE.search(message):
        return CapacityError(f"{code}: {message}")
    return TransportError(f"{code or 'ClientError'}: {message}")


def parse_converse_response(response: Dict[str, Any]) -> InferenceResult:
    """
    Extract text and token usage from a Converse response.

    Raises:
        TransportError: If the response has no message content
    """
    try:
        content = response["output"]["message"]["content"]
    except (KeyError, TypeError):
        raise TransportError("Malformed Converse response: missing output message")

    text = "".join(block.get("text", "") for block in content if isinstance(block, dict))

    usage = response.get("usage") or {}
    input_tokens = int(usage.get("inputTokens", 0))
    output_tokens = int(usage.get("outputTokens", 0))
    total_tokens = int(usage.get("totalTokens", input_tokens + output_tokens))

    return InferenceResult(
        text=text,
        token_usage=TokenUsage(input=input_tokens, output=output_tokens, total=total_tokens)
    )


class BedrockInferenceClient:
    """
    Async InferenceClient backed by the Bedrock runtime Converse API.

    Throttling and server errors are retried through the backoff handler;
    everything else is mapped to the error taxonomy and raised.
    """

    def __init__(
        self,
        region: str = "us-east-1",
        aws_profile: Optional[str] = None,
        session: Optional[aioboto3.Session] = None,
        backoff_handler: Optional[BackoffHandler] = None
    ):
        """
        Initialize the Bedrock client.

        Args:
            region: AWS region for Bedrock service
            aws_profile: AWS profile name (optional)
            session: Existing aioboto3 session (optional)
            backoff_handler: Custom backoff handler (optional)
        """
        self.region = region
        self.aws_profile = aws_profile
        self.session = session or aioboto3.Session(profile_name=aws_profile)
        self.backoff_handler = backoff_handler or BackoffHandler()

        self._client = None
        self._client_context = None

    async def __aenter__(self):
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close(exc_type, exc_val, exc_tb)

    async def _ensure_client(self):
        if not self._client:
            client_context = self.session.client('bedrock-runtime', region_name=self.region)
            self._client = await client_context.__aenter__()
            self._client_context = client_context

    async def close(self, exc_type=None, exc_val=None, exc_tb=None):
        if self._client_context:
            await self._client_context.__aexit__(exc_type, exc_val, exc_tb)
            self._client_context = None
            self._client = None

    async def invoke(
        self,
        model_id: str,
        messages: List[Dict[str, str]],
        parameters: Dict[str, Any]
    ) -> InferenceResult:
        """
        Run one chat completion.

        Args:
            model_id: Bedrock model identifier
            messages: Chat messages ({role, content})
            parameters: temperature, max_tokens, top_p, stop_sequences

        Returns:
            InferenceResult with response text and token usage

        Raises:
            CapacityError: On quota or token-budget rejections
            AuthError: On rejected credentials
            TransportError: On any other provider or network failure
        """
        await self._ensure_client()
        request_params = to_converse_request(model_id, messages, parameters)

        async def make_api_call():
            return await self._client.converse(**request_params)

        try:
            response = await self.backoff_handler.execute_with_backoff(make_api_call)
        except ClientError as e:
            mapped = map_client_error(e)
            logger.error(
                "Bedrock API error",
                model_id=model_id,
                error_code=error_code(e),
                error_category=self.backoff_handler.get_error_category(e),
                mapped_error=type(mapped).__name__
            )
            raise mapped from e
        except (BotoCoreError, ConnectionError, TimeoutError) as e:
            logger.error("Bedrock transport error", model_id=model_id, error=str(e))
            raise TransportError(str(e)) from e

        return parse_converse_response(response)
