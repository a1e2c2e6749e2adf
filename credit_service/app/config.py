from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .models.user_credits import LowTokenThreshold


DEFAULT_CONFIG_FILE_NAME = "config.yaml"

CREDIT_SERVICE_DEFAULT_CURRENCY = "CREDIT_SERVICE_DEFAULT_CURRENCY"
CREDIT_SERVICE_SWEEP_INTERVAL_SECONDS = "CREDIT_SERVICE_SWEEP_INTERVAL_SECONDS"

DEFAULT_SWEEP_INTERVAL_SECONDS = 60.0 * 60.0


@dataclass(slots=True)
class ExpiryConfig:
    warn_before_seconds: int = 0
    sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS
    low_tokens: list[LowTokenThreshold] = field(default_factory=list)

    @property
    def warn_before_millis(self) -> int:
        return self.warn_before_seconds * 1000


@dataclass(slots=True)
class CreditsConfig:
    default_currency: str = "usd"
    expiry: ExpiryConfig = field(default_factory=ExpiryConfig)


@dataclass(slots=True)
class AppConfig:
    """credit-service 전체 설정 루트."""

    credits: CreditsConfig


def _find_config_path() -> Path | None:
    """현재 작업 디렉토리 기준으로 상위로 올라가며 config.yaml 을 찾는다.

    설정 파일은 선택 사항이다. 없으면 None 을 반환하고 기본값을 사용한다.
    """

    current = Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / DEFAULT_CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


def _parse_number(raw: object, key: str, path: Path | None, cast: type) -> int | float:
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:  # noqa: TRY003
        raise RuntimeError(f"invalid {key} in {path}: {raw!r}") from exc


def parse_credits_config(data: dict, path: Path | None = None) -> CreditsConfig:
    credits = data.get("credits") or {}
    expiry_raw = credits.get("expiry") or {}

    low_tokens: list[LowTokenThreshold] = []
    for item in expiry_raw.get("low_tokens") or []:
        if not isinstance(item, dict):
            continue
        offer_group = str(item.get("offer_group", "")).strip()
        if not offer_group:
            continue
        minimum = _parse_number(
            item.get("min", 0), "credits.expiry.low_tokens.min", path, int
        )
        low_tokens.append(LowTokenThreshold(offer_group=offer_group, min=minimum))

    expiry = ExpiryConfig(
        warn_before_seconds=int(
            _parse_number(
                expiry_raw.get("warn_before_seconds", 0),
                "credits.expiry.warn_before_seconds",
                path,
                int,
            )
        ),
        sweep_interval_seconds=float(
            _parse_number(
                expiry_raw.get("sweep_interval_seconds", DEFAULT_SWEEP_INTERVAL_SECONDS),
                "credits.expiry.sweep_interval_seconds",
                path,
                float,
            )
        ),
        low_tokens=low_tokens,
    )

    currency = str(credits.get("default_currency") or "usd").strip().lower() or "usd"
    return CreditsConfig(default_currency=currency, expiry=expiry)


def load_credits_config() -> CreditsConfig:
    path = _find_config_path()
    data: dict = {}
    if path is not None:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    cfg = parse_credits_config(data, path)

    # 환경 변수가 파일 값보다 우선한다.
    currency_env = os.getenv(CREDIT_SERVICE_DEFAULT_CURRENCY)
    if currency_env:
        cfg.default_currency = currency_env.strip().lower()

    interval_env = os.getenv(CREDIT_SERVICE_SWEEP_INTERVAL_SECONDS)
    if interval_env:
        try:
            cfg.expiry.sweep_interval_seconds = float(interval_env)
        except ValueError as exc:
            raise RuntimeError(
                f"{CREDIT_SERVICE_SWEEP_INTERVAL_SECONDS} must be a number: {interval_env!r}",
            ) from exc

    return cfg


def load_config() -> AppConfig:
    """credit-service 설정을 로드하여 AppConfig 로 반환한다."""

    return AppConfig(credits=load_credits_config())
