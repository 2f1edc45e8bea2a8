import pytest

from asset_gateway.core.exceptions import ErrorCode, ProviderError, ProvidersExhaustedError
from asset_gateway.core.http_client import RetryPolicy
from asset_gateway.schemas.asset_generation import GenerationRequest, ProviderAttempt
from asset_gateway.services.providers import ProviderChain
from asset_gateway.services.providers.base import ImageProvider, ProviderOutput
from asset_gateway.services.secrets.manager import StaticSecretSource


class ScriptedProvider(ImageProvider):
    """按预设行为返回产物或抛出异常的 provider"""

    credential_name = "SCRIPTED_KEY"

    def __init__(self, name: str, outcome):
        super().__init__(StaticSecretSource({"SCRIPTED_KEY": "k"}))
        self.name = name
        self.outcome = outcome
        self.calls = 0

    def default_retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_retries=0)

    async def invoke(self, request):
        self.calls += 1
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome

    async def _generate(self, client, request, api_key):
        raise NotImplementedError


def _request() -> GenerationRequest:
    return GenerationRequest(prompt="p", size="512x512", format="png", folder="generated", request_id="req-1")


def _ok(name: str) -> ProviderOutput:
    return ProviderOutput(asset="https://cdn.test/img.png", provider=name)


def _fail(name: str, code: ErrorCode) -> ProviderError:
    return ProviderError(code, f"{name} failed", provider=name)


def test_empty_chain_is_rejected():
    with pytest.raises(ValueError):
        ProviderChain([])


@pytest.mark.asyncio
async def test_first_success_stops_chain():
    first = ScriptedProvider("first", _ok("first"))
    second = ScriptedProvider("second", _ok("second"))

    output, attempts = await ProviderChain([first, second]).run(_request())

    assert output.provider == "first"
    assert second.calls == 0
    assert [a.provider for a in attempts] == ["first"]
    assert attempts[0].success is True


@pytest.mark.asyncio
async def test_missing_credentials_advances_to_next_provider():
    first = ScriptedProvider("first", _fail("first", ErrorCode.MISSING_CREDENTIALS))
    second = ScriptedProvider("second", _ok("second"))
    seen: list[ProviderAttempt] = []

    async def on_attempt(attempt: ProviderAttempt) -> None:
        seen.append(attempt)

    output, attempts = await ProviderChain([first, second]).run(_request(), on_attempt=on_attempt)

    assert output.provider == "second"
    failed = [a for a in attempts if a.provider == "first"]
    assert len(failed) == 1
    assert failed[0].error_code == "missing_credentials"
    assert failed[0].retryable_at_chain_level is False
    assert seen == attempts


@pytest.mark.asyncio
async def test_unexpected_exception_counts_as_upstream_error():
    first = ScriptedProvider("first", RuntimeError("adapter bug"))
    second = ScriptedProvider("second", _ok("second"))

    output, attempts = await ProviderChain([first, second]).run(_request())

    assert output.provider == "second"
    assert attempts[0].error_code == "upstream_error"
    assert "adapter bug" in attempts[0].error_message


@pytest.mark.asyncio
async def test_all_failures_raise_exhausted_with_attempt_log():
    providers = [
        ScriptedProvider("openai", _fail("openai", ErrorCode.VERIFICATION_REQUIRED)),
        ScriptedProvider("gemini", _fail("gemini", ErrorCode.RATE_LIMITED)),
        ScriptedProvider("stability", _fail("stability", ErrorCode.INVALID_RESPONSE)),
    ]

    with pytest.raises(ProvidersExhaustedError) as exc_info:
        await ProviderChain(providers).run(_request())

    error = exc_info.value
    assert error.code == ErrorCode.PROVIDERS_EXHAUSTED
    assert [a.error_code for a in error.attempts] == ["verification_required", "rate_limited", "invalid_response"]
    assert all(p.calls == 1 for p in providers)
    assert len(error.to_dict()["details"]["attempts"]) == 3
