"""questlab configuration."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """questlab settings loaded from environment variables."""

    # Quest catalog (JSON, or YAML when the suffix is .yml/.yaml)
    catalog_path: str = "/usr/local/share/questlab/quests.json"

    # Local host resolution
    hosts_path: str = "/etc/hosts"

    # Docker settings
    container_prefix: str = "questlab"
    docker_network: str = "bridge"
    docker_client_timeout: int = 120  # seconds, image pulls can be slow

    # Puppet master
    puppet_master_address: str = ""  # Injected as "puppet" into nodes if set
    puppet_bin: str = "puppetserver"
    puppet_command_timeout: float = 60.0
    agent_run_timeout: float = 600.0  # A first agent run can take minutes

    # Readiness gating
    login_port: int = 22
    ready_retries: int = 30
    ready_interval: float = 2.0
    connect_timeout: float = 2.0

    # Certificate requests show up once the agent inside the node boots
    csr_retries: int = 30
    csr_interval: float = 2.0

    # Logging configuration
    log_format: str = "text"  # "json" or "text"
    log_level: str = "INFO"

    class Config:
        env_prefix = "QUESTLAB_"


settings = Settings()
