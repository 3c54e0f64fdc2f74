"""
settings.py - Boot configuration (SINGLE SOURCE OF TRUTH)

Policy:
- .env is loaded once at boot; `load_config` is the only reader of identity
  and endpoint environment variables.
- Tunables (funding constants, poll intervals, retry budgets) come from an
  optional TOML file layered with NOSDEPLOY__SECTION__KEY env overrides.
- Private keys are never logged.
"""

from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import base58
import toml
from dotenv import load_dotenv
from loguru import logger
from solders.keypair import Keypair

from nosdeploy.errors import ConfigError, EncodingError


DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"
DEFAULT_API_URL = "https://deployment-manager.k8s.prd.nos.ci"
DEFAULT_PINATA_URL = "https://api.pinata.cloud"
DEFAULT_TIMEOUT_SIGNATURE = "Transaction was not confirmed in 60.00 seconds"

_B58_CHARS = set("123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz")


# =============================================================================
# TUNABLES
# =============================================================================

@dataclass(frozen=True)
class FundingSettings:
    # 0.001 SOL transfer fee headroom + ~0.002 SOL ATA rent
    target_topup_sol: Decimal = Decimal("0.003")
    fee_buffer_sol: Decimal = Decimal("0.0001")
    min_sol_for_token_transfer: Decimal = Decimal("0.003")


@dataclass(frozen=True)
class ConfirmationSettings:
    poll_interval_seconds: float = 2.0
    confirm_timeout_seconds: float = 60.0
    # re-checks of a timed-out signature (same signed tx) before reporting it
    recheck_attempts: int = 1


@dataclass(frozen=True)
class StartSettings:
    max_attempts: int = 10
    verify_delay_seconds: float = 5.0
    retry_delay_seconds: float = 10.0
    restart_backoff_seconds: float = 10.0
    nested_restarts: int = 3
    cooldown_seconds: float = 30.0


@dataclass(frozen=True)
class TrackerSettings:
    poll_interval_seconds: float = 5.0
    max_restarts: int = 3
    restart_cooldown_seconds: float = 45.0
    completion_timeout_seconds: float = 300.0


@dataclass(frozen=True)
class DiagnosticsSettings:
    # Wording belongs to the deployment manager and is undocumented.
    timeout_signature: str = DEFAULT_TIMEOUT_SIGNATURE


@dataclass
class OverrideRecord:
    key: str
    source: str
    old: Any
    new: Any


@dataclass
class EngineSettings:
    funding: FundingSettings = field(default_factory=FundingSettings)
    confirmation: ConfirmationSettings = field(default_factory=ConfirmationSettings)
    start: StartSettings = field(default_factory=StartSettings)
    tracker: TrackerSettings = field(default_factory=TrackerSettings)
    diagnostics: DiagnosticsSettings = field(default_factory=DiagnosticsSettings)
    overrides: List[OverrideRecord] = field(default_factory=list)
    loaded_files: List[str] = field(default_factory=list)

    @classmethod
    def load(cls, settings_path: Optional[str] = None, env_prefix: str = "NOSDEPLOY__") -> "EngineSettings":
        layers: List[Tuple[Dict[str, Any], str]] = []
        loaded_files: List[str] = []

        if settings_path:
            if not os.path.exists(settings_path):
                raise ConfigError(f"settings file not found: {settings_path}")
            with open(settings_path, "r", encoding="utf-8") as f:
                layers.append((toml.load(f), os.path.basename(settings_path)))
            loaded_files.append(os.path.basename(settings_path))

        env_overrides = _load_env_overrides(env_prefix)
        if env_overrides:
            layers.append((env_overrides, "env"))

        merged: Dict[str, Any] = {}
        overrides: List[OverrideRecord] = []
        for payload, source in layers:
            _merge_dicts(merged, payload, source, overrides)

        settings = cls(
            funding=_build_funding(merged),
            confirmation=_build_confirmation(merged),
            start=_build_start(merged),
            tracker=_build_tracker(merged),
            diagnostics=_build_diagnostics(merged),
            overrides=overrides,
            loaded_files=loaded_files,
        )
        settings.log_summary()
        return settings

    def log_summary(self) -> None:
        logger.info(f"SETTINGS | files={', '.join(self.loaded_files) or '<none>'}")
        for o in self.overrides:
            logger.info(f"SETTINGS_OVERRIDE | {o.key} from {o.source} | old={o.old} -> new={o.new}")
        logger.info(
            f"SETTINGS | confirm_timeout={self.confirmation.confirm_timeout_seconds}s | "
            f"start_attempts={self.start.max_attempts} | tracker_restarts={self.tracker.max_restarts}"
        )


def _merge_dicts(dst: Dict[str, Any], src: Dict[str, Any], source: str, overrides: List[OverrideRecord], prefix: str = "") -> None:
    for key, value in src.items():
        full_key = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict) and isinstance(dst.get(key), dict):
            _merge_dicts(dst[key], value, source, overrides, full_key)
        elif isinstance(value, dict):
            dst[key] = value.copy()
        else:
            if key in dst and dst[key] != value:
                overrides.append(OverrideRecord(full_key, source, dst[key], value))
            dst[key] = value


def _load_env_overrides(prefix: str) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for env_key, env_val in os.environ.items():
        if not env_key.startswith(prefix):
            continue
        path_parts = env_key[len(prefix):].lower().split("__")
        cur = overrides
        for part in path_parts[:-1]:
            if part not in cur or not isinstance(cur[part], dict):
                cur[part] = {}
            cur = cur[part]
        cur[path_parts[-1]] = _coerce_env_value(env_val)
    return overrides


def _coerce_env_value(val: str) -> Any:
    lowered = val.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    try:
        return int(val)
    except ValueError:
        pass
    try:
        return float(val)
    except ValueError:
        pass
    return val


def _to_decimal(value: Any, label: str) -> Decimal:
    try:
        return Decimal(str(value))
    except Exception as exc:
        raise ConfigError(f"Invalid decimal value for {label}: {value}") from exc


def _positive(value: float, label: str) -> float:
    if value <= 0:
        raise ConfigError(f"{label} must be > 0, got {value}")
    return value


def _build_funding(cfg: Dict[str, Any]) -> FundingSettings:
    section = cfg.get("funding", {}) or {}
    defaults = FundingSettings()
    return FundingSettings(
        target_topup_sol=_to_decimal(section.get("target_topup_sol", defaults.target_topup_sol), "funding.target_topup_sol"),
        fee_buffer_sol=_to_decimal(section.get("fee_buffer_sol", defaults.fee_buffer_sol), "funding.fee_buffer_sol"),
        min_sol_for_token_transfer=_to_decimal(
            section.get("min_sol_for_token_transfer", defaults.min_sol_for_token_transfer),
            "funding.min_sol_for_token_transfer",
        ),
    )


def _build_confirmation(cfg: Dict[str, Any]) -> ConfirmationSettings:
    section = cfg.get("confirmation", {}) or {}
    recheck_attempts = int(section.get("recheck_attempts", 1))
    if recheck_attempts < 0:
        raise ConfigError("confirmation.recheck_attempts must be >= 0")
    return ConfirmationSettings(
        poll_interval_seconds=_positive(float(section.get("poll_interval_seconds", 2.0)), "confirmation.poll_interval_seconds"),
        confirm_timeout_seconds=_positive(float(section.get("confirm_timeout_seconds", 60.0)), "confirmation.confirm_timeout_seconds"),
        recheck_attempts=recheck_attempts,
    )


def _build_start(cfg: Dict[str, Any]) -> StartSettings:
    section = cfg.get("start", {}) or {}
    max_attempts = int(section.get("max_attempts", 10))
    if max_attempts < 1:
        raise ConfigError("start.max_attempts must be >= 1")
    return StartSettings(
        max_attempts=max_attempts,
        verify_delay_seconds=float(section.get("verify_delay_seconds", 5.0)),
        retry_delay_seconds=float(section.get("retry_delay_seconds", 10.0)),
        restart_backoff_seconds=float(section.get("restart_backoff_seconds", 10.0)),
        nested_restarts=int(section.get("nested_restarts", 3)),
        cooldown_seconds=float(section.get("cooldown_seconds", 30.0)),
    )


def _build_tracker(cfg: Dict[str, Any]) -> TrackerSettings:
    section = cfg.get("tracker", {}) or {}
    return TrackerSettings(
        poll_interval_seconds=_positive(float(section.get("poll_interval_seconds", 5.0)), "tracker.poll_interval_seconds"),
        max_restarts=int(section.get("max_restarts", 3)),
        restart_cooldown_seconds=float(section.get("restart_cooldown_seconds", 45.0)),
        completion_timeout_seconds=_positive(
            float(section.get("completion_timeout_seconds", 300.0)), "tracker.completion_timeout_seconds"
        ),
    )


def _build_diagnostics(cfg: Dict[str, Any]) -> DiagnosticsSettings:
    section = cfg.get("diagnostics", {}) or {}
    signature = str(section.get("timeout_signature", DEFAULT_TIMEOUT_SIGNATURE)).strip()
    if not signature:
        raise ConfigError("diagnostics.timeout_signature cannot be empty")
    return DiagnosticsSettings(timeout_signature=signature)


# =============================================================================
# KEYPAIR LOADING
# =============================================================================

def load_keypair(private_key_b58: str) -> Keypair:
    """
    Load keypair from a base58 private key.

    ACCEPTS: base58 string decoding to exactly 64 bytes (seed + pubkey).
    NEVER LOGS: the key or its decoded bytes.
    """
    if not private_key_b58 or not isinstance(private_key_b58, str):
        raise EncodingError("private key is empty")

    private_key_b58 = private_key_b58.strip()
    if not all(c in _B58_CHARS for c in private_key_b58):
        raise EncodingError("private key contains invalid characters (must be base58)")

    key_bytes = base58.b58decode(private_key_b58)
    if len(key_bytes) != 64:
        raise EncodingError(f"private key decoded to {len(key_bytes)} bytes, expected 64")

    try:
        return Keypair.from_bytes(key_bytes)
    except Exception as e:  # noqa: BLE001
        raise EncodingError(f"failed to create keypair: {e}") from e


def load_keypair_file(path: str) -> Keypair:
    """Load a JSON keypair file: a 64-int list, or {"privateKey": [...]}."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"keypair file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise EncodingError(f"keypair file is not valid JSON: {path}") from e

    raw = payload.get("privateKey") if isinstance(payload, dict) else payload
    if not isinstance(raw, list) or len(raw) != 64:
        raise EncodingError(f"keypair file {path} must hold 64 key bytes")
    try:
        return Keypair.from_bytes(bytes(raw))
    except Exception as e:  # noqa: BLE001
        raise EncodingError(f"invalid keypair bytes in {path}: {e}") from e


# =============================================================================
# ENGINE CONFIG
# =============================================================================

@dataclass(frozen=True)
class EngineConfig:
    """
    Immutable config. Built once at boot.

    Runtime code reads from this object only; nothing else calls os.getenv()
    for identity or endpoints.
    """
    wallet_pubkey: str
    rpc_url: str
    market_address: str
    api_url: str = DEFAULT_API_URL
    pinata_url: str = DEFAULT_PINATA_URL
    pinata_jwt: str = ""
    http_timeout_seconds: float = 30.0
    extra_tokens: str = ""
    settings: EngineSettings = field(default_factory=EngineSettings)

    def __post_init__(self):
        if not self.rpc_url:
            raise ConfigError("rpc_url is required")
        if not self.market_address:
            raise ConfigError("market_address is required")


def load_config(dotenv_path: Optional[str] = None) -> Tuple[EngineConfig, Keypair]:
    """
    Returns: (EngineConfig, Keypair)
    Raises: ConfigError / EncodingError on missing or invalid values.
    """
    load_dotenv(dotenv_path)

    private_key = os.getenv("NOSANA_PRIVATE_KEY", "").strip()
    keypair_path = os.getenv("NOSANA_KEYPAIR_PATH", "").strip()
    if private_key:
        keypair = load_keypair(private_key)
    elif keypair_path:
        keypair = load_keypair_file(keypair_path)
    else:
        raise ConfigError("set NOSANA_PRIVATE_KEY or NOSANA_KEYPAIR_PATH")

    market = os.getenv("NOSANA_MARKET", "").strip()
    if not market:
        raise ConfigError("NOSANA_MARKET not set")

    settings = EngineSettings.load(os.getenv("NOSDEPLOY_SETTINGS", "").strip() or None)

    config = EngineConfig(
        wallet_pubkey=str(keypair.pubkey()),
        rpc_url=os.getenv("SOLANA_RPC_URL", DEFAULT_RPC_URL).strip(),
        market_address=market,
        api_url=os.getenv("NOSANA_API_URL", DEFAULT_API_URL).strip().rstrip("/"),
        pinata_url=os.getenv("PINATA_URL", DEFAULT_PINATA_URL).strip().rstrip("/"),
        pinata_jwt=os.getenv("PINATA_JWT", "").strip(),
        http_timeout_seconds=float(os.getenv("HTTP_TIMEOUT", "30")),
        extra_tokens=os.getenv("NOSANA_EXTRA_TOKENS", "").strip(),
        settings=settings,
    )

    logger.info(
        f"CONFIG | wallet={config.wallet_pubkey[:8]}... | market={config.market_address} | rpc={config.rpc_url}"
    )
    return config, keypair


def load_config_or_exit(dotenv_path: Optional[str] = None) -> Tuple[EngineConfig, Keypair]:
    """Boot wrapper: prints FATAL and exits 1 instead of raising."""
    try:
        return load_config(dotenv_path)
    except (ConfigError, EncodingError) as e:
        print(f"FATAL: {e}", file=sys.stderr)
        sys.exit(1)


__all__ = [
    "FundingSettings",
    "ConfirmationSettings",
    "StartSettings",
    "TrackerSettings",
    "DiagnosticsSettings",
    "EngineSettings",
    "EngineConfig",
    "load_keypair",
    "load_keypair_file",
    "load_config",
    "load_config_or_exit",
]
