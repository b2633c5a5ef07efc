"""
Settings from the environment, falling back to a .env file.

    PIMLICO_API_KEY           - bundler API key (used when BUNDLER_URL is unset)
    BUNDLER_URL               - full bundler JSON-RPC URL
    CHAIN_ID                  - defaults to Sepolia
    ENTRYPOINT_ADDRESS        - defaults to the EntryPoint v0.7 deployment
    SAFE_4337_MODULE_ADDRESS  - defaults to the Safe4337Module v0.3.0 deployment
    BUNDLER_TIMEOUT           - seconds per JSON-RPC call
    LOG_LEVEL / LOG_JSON      - logging
"""

import os
from dataclasses import dataclass
from typing import Dict, Optional

ENTRYPOINT_V07 = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
SAFE_4337_MODULE_V030 = "0x75cf11467937ce3F2f357CE24ffc3DBF8fD5c226"
SEPOLIA_CHAIN_ID = 11155111


@dataclass(frozen=True)
class Settings:
    chain_id: int = SEPOLIA_CHAIN_ID
    entry_point: str = ENTRYPOINT_V07
    safe_4337_module: str = SAFE_4337_MODULE_V030
    bundler_url: Optional[str] = None
    bundler_timeout: float = 30.0
    log_level: str = "INFO"
    log_json: bool = False


def read_env_file(path: str) -> Dict[str, str]:
    """KEY=VALUE lines; blank lines and # comments ignored."""
    values = {}
    if not os.path.exists(path):
        return values
    with open(path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            values[key.strip()] = value.strip().strip('"').strip("'")
    return values


def load_settings(env_path: Optional[str] = None, environ=None) -> Settings:
    """Environment variables win over the .env file."""
    env_file = read_env_file(env_path or os.path.join(os.getcwd(), ".env"))
    environ = os.environ if environ is None else environ

    def get(key, default=None):
        value = environ.get(key)
        if value is None:
            value = env_file.get(key, default)
        return value

    chain_id = int(get("CHAIN_ID", SEPOLIA_CHAIN_ID))
    bundler_url = get("BUNDLER_URL")
    api_key = get("PIMLICO_API_KEY")
    if not bundler_url and api_key:
        bundler_url = f"https://api.pimlico.io/v2/{chain_id}/rpc?apikey={api_key}"

    return Settings(
        chain_id=chain_id,
        entry_point=get("ENTRYPOINT_ADDRESS", ENTRYPOINT_V07),
        safe_4337_module=get("SAFE_4337_MODULE_ADDRESS", SAFE_4337_MODULE_V030),
        bundler_url=bundler_url,
        bundler_timeout=float(get("BUNDLER_TIMEOUT", 30)),
        log_level=get("LOG_LEVEL", "INFO"),
        log_json=str(get("LOG_JSON", "")).lower() in ("1", "true", "yes"),
    )
