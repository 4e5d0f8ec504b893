"""Load settings.yaml into typed dataclasses: gateway, deliberation, agents."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class GatewayConfig:
    base_url: str = "http://localhost:11434"
    base_url_env: str = "OLLAMA_BASE_URL"
    timeout_sec: float = 120.0
    poll_interval_sec: float = 30.0
    warm_on_start: bool = False

    @property
    def effective_base_url(self) -> str:
        """Env override wins over the file value."""
        return os.environ.get(self.base_url_env, "").strip() or self.base_url


@dataclass
class DeliberationConfig:
    chief_code: str = "chief"
    max_cross_examinations: int = 3
    excerpt_chars: int = 1000
    default_locale: str = "en"


@dataclass
class UseCaseConfig:
    model: str = "llama3:8b"
    premortem_budget: float = 100_000
    premortem_agents: list[str] = field(default_factory=lambda: ["cfo", "ciso", "pessimist"])


@dataclass
class DefaultsConfig:
    output_dir: Path = Path("./output")
    store_path: Path | None = None


@dataclass
class InboxConfig:
    dir: Path = Path("./inbox")
    archive_dir: Path = Path("./inbox/archive")


@dataclass
class AgentConfig:
    id: str
    code: str
    name: str
    role: str
    model: str
    system_prompt: str


@dataclass
class AppConfig:
    gateway: GatewayConfig
    deliberation: DeliberationConfig
    use_cases: UseCaseConfig
    defaults: DefaultsConfig
    inbox: InboxConfig
    agents: list[AgentConfig] = field(default_factory=list)


def _load_agents(raw_agents: list[dict]) -> list[AgentConfig]:
    agents: list[AgentConfig] = []
    seen: set[str] = set()
    seen_codes: set[str] = set()
    for entry in raw_agents:
        agent = AgentConfig(
            id=str(entry["id"]),
            code=str(entry["code"]),
            name=str(entry["name"]),
            role=str(entry["role"]),
            model=str(entry["model"]),
            system_prompt=str(entry["system_prompt"]).strip(),
        )
        if agent.id in seen:
            raise ValueError(f"Duplicate agent id in settings: {agent.id}")
        if agent.code in seen_codes:
            raise ValueError(f"Duplicate agent code in settings: {agent.code}")
        seen.add(agent.id)
        seen_codes.add(agent.code)
        agents.append(agent)
    return agents


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if the settings file is missing, KeyError/ValueError
    on a malformed agent entry. Every section except ``agents`` is optional.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    gateway_raw = raw.get("gateway") or {}
    gateway = GatewayConfig(
        base_url=str(gateway_raw.get("base_url", GatewayConfig.base_url)),
        base_url_env=str(gateway_raw.get("base_url_env", GatewayConfig.base_url_env)),
        timeout_sec=float(gateway_raw.get("timeout_sec", GatewayConfig.timeout_sec)),
        poll_interval_sec=float(gateway_raw.get("poll_interval_sec", GatewayConfig.poll_interval_sec)),
        warm_on_start=bool(gateway_raw.get("warm_on_start", False)),
    )

    delib_raw = raw.get("deliberation") or {}
    deliberation = DeliberationConfig(
        chief_code=str(delib_raw.get("chief_code", DeliberationConfig.chief_code)),
        max_cross_examinations=int(
            delib_raw.get("max_cross_examinations", DeliberationConfig.max_cross_examinations)
        ),
        excerpt_chars=int(delib_raw.get("excerpt_chars", DeliberationConfig.excerpt_chars)),
        default_locale=str(delib_raw.get("default_locale", DeliberationConfig.default_locale)),
    )

    uc_raw = raw.get("use_cases") or {}
    use_cases = UseCaseConfig(
        model=str(uc_raw.get("model", UseCaseConfig.model)),
        premortem_budget=float(uc_raw.get("premortem_budget", UseCaseConfig.premortem_budget)),
    )
    if "premortem_agents" in uc_raw:
        use_cases.premortem_agents = [str(a) for a in uc_raw["premortem_agents"]]

    defaults_raw = raw.get("defaults") or {}
    store_path = defaults_raw.get("store_path")
    defaults = DefaultsConfig(
        output_dir=Path(defaults_raw.get("output_dir", "./output")),
        store_path=Path(store_path) if store_path else None,
    )

    inbox_raw = raw.get("inbox") or {}
    inbox_dir = Path(inbox_raw.get("dir", "./inbox"))
    inbox = InboxConfig(
        dir=inbox_dir,
        archive_dir=Path(inbox_raw.get("archive_dir", inbox_dir / "archive")),
    )

    agents = _load_agents(raw.get("agents") or [])
    if not agents:
        logger.warning("No agents defined in %s; deliberations will have nobody to ask", settings_path)
    else:
        logger.debug("Loaded %d agents from %s", len(agents), settings_path)

    return AppConfig(
        gateway=gateway,
        deliberation=deliberation,
        use_cases=use_cases,
        defaults=defaults,
        inbox=inbox,
        agents=agents,
    )
