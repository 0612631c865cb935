"""
Server Profile Configuration

Every pattern server instance is a profile directory:

    profiles/<profile>/
        server.yaml        identity, resource groups, prompts, assemblies
        manifest.yaml      per-resource metadata
        resources/...      payload files
        prompts/*.j2       prompt templates

The profile name comes from the caller, then PATTERN_SERVER_PROFILE, then
DEFAULT_PROFILE. The profiles directory comes from the caller, then
PATTERN_SERVER_PROFILES_DIR, then the repository or container layout.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from pattern_errors import ConfigError
from resource_store import GroupLoader, ResourceGroup, directory_loader, module_loader

logger = logging.getLogger(__name__)

DEFAULT_PROFILE = "erp-business-patterns"

# In development: __file__ is in src/, profiles/ sits next to src/
# In container: profiles/ is copied next to the modules
_possible_base = Path(__file__).parent.parent
if not (_possible_base / "profiles").exists():
    _possible_base = Path(__file__).parent

BASE_DIR = _possible_base
PROFILES_DIR = BASE_DIR / "profiles"

SCHEME_PATTERN = re.compile(r"^[a-z][a-z0-9+.-]*$")


@dataclass
class ServerConfig:
    """Identity and content layout of one pattern server profile."""
    name: str
    version: str
    scheme: str
    profile_dir: Path
    description: str = ""
    manifest: str = "manifest.yaml"
    groups: List[Dict[str, Any]] = field(default_factory=list)
    prompts: List[Dict[str, Any]] = field(default_factory=list)
    quick_reference: Dict[str, Any] = field(default_factory=dict)
    assemblies: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def manifest_path(self) -> Path:
        return self.profile_dir / self.manifest

    @property
    def prompts_dir(self) -> Path:
        return self.profile_dir / "prompts"

    @classmethod
    def from_dict(cls, data: Dict[str, Any], profile_dir: Path) -> "ServerConfig":
        """
        Build a ServerConfig from parsed server.yaml content.

        Raises:
            ConfigError: if required keys are missing or malformed
        """
        if not isinstance(data, dict):
            raise ConfigError(f"server.yaml in {profile_dir.name} must be a mapping")

        missing = [key for key in ("name", "scheme") if not data.get(key)]
        if missing:
            raise ConfigError(f"server.yaml in {profile_dir.name} is missing: {', '.join(missing)}")

        scheme = str(data["scheme"])
        if not SCHEME_PATTERN.match(scheme):
            raise ConfigError(f"Invalid URI scheme '{scheme}' in profile {profile_dir.name}")

        groups = data.get("groups") or []
        if not isinstance(groups, list):
            raise ConfigError(f"groups in profile {profile_dir.name} must be a list")

        return cls(
            name=str(data["name"]),
            version=str(data.get("version", "1.0.0")),
            scheme=scheme,
            profile_dir=profile_dir,
            description=str(data.get("description", "")),
            manifest=str(data.get("manifest", "manifest.yaml")),
            groups=groups,
            prompts=data.get("prompts") or [],
            quick_reference=data.get("quick_reference") or {},
            assemblies=data.get("assemblies") or {},
            metadata=data.get("metadata") or {},
        )


def resolve_profiles_dir(profiles_dir: Optional[str] = None) -> Path:
    if profiles_dir:
        return Path(profiles_dir)
    env_dir = os.getenv("PATTERN_SERVER_PROFILES_DIR")
    if env_dir:
        return Path(env_dir)
    return PROFILES_DIR


def list_profiles(profiles_dir: Optional[str] = None) -> List[str]:
    """Names of the profile directories that hold a server.yaml."""
    root = resolve_profiles_dir(profiles_dir)
    if not root.is_dir():
        return []
    return sorted(p.name for p in root.iterdir() if (p / "server.yaml").is_file())


def load_server_config(profile: Optional[str] = None, profiles_dir: Optional[str] = None) -> ServerConfig:
    """
    Load a server profile.

    Args:
        profile: Profile name (e.g., "crm-template-base")
        profiles_dir: Directory holding the profiles

    Returns:
        Parsed ServerConfig

    Raises:
        ConfigError: if the profile does not exist or server.yaml is invalid
    """
    profile = profile or os.getenv("PATTERN_SERVER_PROFILE") or DEFAULT_PROFILE
    root = resolve_profiles_dir(profiles_dir)
    profile_dir = root / profile
    config_path = profile_dir / "server.yaml"

    if not config_path.is_file():
        available = list_profiles(str(root))
        raise ConfigError(
            f"Profile '{profile}' not found. Available profiles: {', '.join(available) or 'none'}"
        )

    logger.info(f"Loading server profile from: {config_path}")
    with open(config_path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"server.yaml in profile {profile} is not valid YAML: {e}") from e

    return ServerConfig.from_dict(data, profile_dir)


# ============================================================================
# Resource Group Registry
# ============================================================================

def _directory_group(config: ServerConfig, spec: Dict[str, Any]) -> GroupLoader:
    if "path" not in spec:
        raise ConfigError(f"Directory group '{spec.get('id')}' needs a path")
    return directory_loader(config.profile_dir / spec["path"], prefix=spec.get("prefix", ""))


def _module_group(config: ServerConfig, spec: Dict[str, Any]) -> GroupLoader:
    if "target" not in spec:
        raise ConfigError(f"Module group '{spec.get('id')}' needs a target")
    try:
        return module_loader(spec["target"], prefix=spec.get("prefix", ""))
    except ValueError as e:
        raise ConfigError(str(e)) from e


LOADER_KINDS: Dict[str, Callable[[ServerConfig, Dict[str, Any]], GroupLoader]] = {
    "directory": _directory_group,
    "module": _module_group,
}


def build_groups(config: ServerConfig) -> List[ResourceGroup]:
    """
    Turn the profile's group specs into ResourceGroups.

    Raises:
        ConfigError: on a duplicate group id or an unknown loader kind
    """
    groups = []
    seen = set()
    for spec in config.groups:
        group_id = spec.get("id")
        if not group_id:
            raise ConfigError(f"Resource group without id in profile {config.name}")
        if group_id in seen:
            raise ConfigError(f"Duplicate resource group '{group_id}' in profile {config.name}")
        seen.add(group_id)

        kind = spec.get("kind", "directory")
        factory = LOADER_KINDS.get(kind)
        if factory is None:
            raise ConfigError(
                f"Unknown loader kind '{kind}' for group '{group_id}'. "
                f"Valid kinds: {', '.join(LOADER_KINDS)}"
            )
        groups.append(ResourceGroup(group_id=group_id, loader=factory(config, spec)))
    return groups
