"""Address standardization through the Anthropic Messages API.

The model receives a fixed prompt and must answer with one JSON object
``{"order_id", "address", "district", "ward"}``. Timeouts and unparseable
answers are retried; once the attempt budget is spent the caller gets the
input text back with ``status="failed"`` instead of an exception.

Example:
    standardizer = AIAddressStandardizer(config.ai)
    result = await standardizer.standardize("X241019078-N", "12L NGUYỄN THỊ MINH KHAI Q1")
    if result.is_complete:
        ...
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from anthropic import APIStatusError, AsyncAnthropic

from lastmile.config import AIConfig
from lastmile.services.retry_policy import LINEAR, RetryPolicy

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_UNRESOLVABLE = "unresolvable"
STATUS_FAILED = "failed"

REQUIRED_KEYS = ("order_id", "address", "district", "ward")

_RETRYABLE_STATUS_CODES = {408, 409, 429}
_CODE_FENCE = re.compile(r"```(?:json)?\s*|\s*```")
_STRAY_ESCAPE = re.compile(r'\\(?!["\\/bfnrtu])')

SYSTEM_PROMPT = """You standardize Vietnamese delivery addresses for any province or city.

Rules:
1. Rewrite the address as "[House number, Street], [Ward/Commune], [District], [Province/City], Việt Nam".
2. Put the district (Quận/Huyện/Thị xã/Thành phố) in "district" and the ward (Phường/Xã) in "ward".
3. Remove people's names, phone numbers, delivery times and unrelated remarks.
4. Prefer concrete address parts (house number, street, ward, district) even when the text also names a carrier such as "XE", "CHÀNH XE" or "GỬI XE".
5. If the ward is missing or does not exist on that street in that district, infer the correct ward from the street and district.
6. If the province is missing, infer it from the district or street (for example "Q1" means Hồ Chí Minh).
7. If the text cannot be standardized (for example only a carrier name like "Gửi xe Kim Mã"), return null for address, district and ward.
8. Treat compound house numbers such as "174-176-178" as a valid house number.

Examples:
- "191 BÙI THỊ XUÂN, PHƯỜNG 6, QUẬN TÂN BÌNH" ->
  {"order_id": "X241019078-N", "address": "191 Bùi Thị Xuân, Phường 1, Quận Tân Bình, Hồ Chí Minh, Việt Nam", "district": "Quận Tân Bình", "ward": "Phường 1"}
- "12L NGUYỄN THỊ MINH KHAI P.ĐAKAO Q1" ->
  {"order_id": "TEMP_1", "address": "12L Nguyễn Thị Minh Khai, Phường Đa Kao, Quận 1, Hồ Chí Minh, Việt Nam", "district": "Quận 1", "ward": "Phường Đa Kao"}
- "Gửi xe Kim Mã" ->
  {"order_id": "TEMP_2", "address": null, "district": null, "ward": null}

Answer with exactly one JSON object and nothing else."""


@dataclass(frozen=True)
class StandardizedAddress:
    """Outcome of one standardization request.

    Attributes:
        address: Standardized address, or the input text when failed.
        district: District, None when unknown.
        ward: Ward, None when unknown.
        status: ``ok``, ``unresolvable`` (model said null) or ``failed``.
    """

    address: str | None
    district: str | None
    ward: str | None
    status: str = STATUS_OK

    @property
    def is_complete(self) -> bool:
        return bool(self.address and self.district and self.ward)


class MalformedResponseError(ValueError):
    """Model answer could not be parsed into the expected shape."""


def parse_model_response(text: str) -> dict[str, Any]:
    """Parse the model's answer into a dict with all required keys.

    Strips code fences and stray backslashes, accepts either a single object
    or a one-element list.

    Raises:
        MalformedResponseError: If the text is not the expected JSON shape.
    """
    cleaned = _CODE_FENCE.sub("", text or "").strip()
    cleaned = _STRAY_ESCAPE.sub("", cleaned)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"invalid JSON: {e}") from e
    if isinstance(payload, list):
        if len(payload) != 1:
            raise MalformedResponseError(f"expected one object, got {len(payload)}")
        payload = payload[0]
    if not isinstance(payload, dict):
        raise MalformedResponseError(f"expected object, got {type(payload).__name__}")
    missing = [key for key in REQUIRED_KEYS if key not in payload]
    if missing:
        raise MalformedResponseError(f"missing keys: {', '.join(missing)}")
    return payload


def is_retryable_ai_error(error: BaseException) -> bool:
    """Client errors other than 408/409/429 will not improve on retry."""
    if isinstance(error, APIStatusError):
        status = error.status_code
        if 400 <= status < 500 and status not in _RETRYABLE_STATUS_CODES:
            return False
    return True


def _clean_field(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() == "null":
        return None
    return text


class AIAddressStandardizer:
    """Standardize free-form addresses with a generative model.

    Attributes:
        _config: Model name, token budget and retry settings
        _client: AsyncAnthropic client, created on first use
        _retry: Attempt budget with linear backoff (5s x attempt)
    """

    def __init__(
        self,
        config: AIConfig | None = None,
        client: AsyncAnthropic | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        self._config = config or AIConfig()
        self._client = client
        self._retry = retry or RetryPolicy(
            max_attempts=self._config.max_attempts,
            base_delay=self._config.backoff_seconds,
            max_delay=None,
            backoff=LINEAR,
            attempt_timeout=self._config.attempt_timeout_seconds,
            is_retryable=is_retryable_ai_error,
        )

    def _get_client(self) -> AsyncAnthropic:
        if self._client is None:
            self._client = AsyncAnthropic()
        return self._client

    async def _request(self, order_id: str, address: str) -> dict[str, Any]:
        client = self._get_client()
        response = await client.messages.create(
            model=self._config.model,
            max_tokens=self._config.max_tokens,
            system=SYSTEM_PROMPT,
            messages=[{
                "role": "user",
                "content": json.dumps(
                    {"order_id": order_id, "address": address}, ensure_ascii=False
                ),
            }],
        )
        if not response.content:
            raise MalformedResponseError("empty response")
        return parse_model_response(response.content[0].text)

    async def standardize(self, order_id: str, address: str) -> StandardizedAddress:
        """Standardize ``address`` for ``order_id``; never raises for API failures."""
        try:
            payload = await self._retry.run(
                lambda: self._request(order_id, address), label="ai_standardize"
            )
        except Exception as e:
            logger.warning(
                "ai_standardize_failed code=E-3001 order_id=%s error=%s: %s",
                order_id, type(e).__name__, e,
            )
            return StandardizedAddress(
                address=address, district=None, ward=None, status=STATUS_FAILED
            )

        result = StandardizedAddress(
            address=_clean_field(payload.get("address")),
            district=_clean_field(payload.get("district")),
            ward=_clean_field(payload.get("ward")),
        )
        if result.address is None and result.district is None and result.ward is None:
            logger.info("ai_standardize_unresolvable order_id=%s", order_id)
            return StandardizedAddress(
                address=None, district=None, ward=None, status=STATUS_UNRESOLVABLE
            )
        logger.info(
            "ai_standardize_ok order_id=%s district=%r ward=%r",
            order_id, result.district, result.ward,
        )
        return result
