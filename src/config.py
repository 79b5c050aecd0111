"""
Configuration module for the Flink Session Cluster Operator.

Loads configuration from environment variables. Kubernetes credentials come
from the in-cluster service account or a kubeconfig file, resolved by
kubernetes_asyncio when the client is built.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class KubernetesConfig:
    """Kubernetes API access configuration."""

    kubeconfig: Optional[str] = None  # None: default kubeconfig location
    context: Optional[str] = None
    namespace: str = "default"
    request_timeout: int = 30  # seconds
    watch_timeout: int = 300  # seconds, server side

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            kubeconfig=os.getenv("KUBECONFIG") or None,
            context=os.getenv("KUBE_CONTEXT") or None,
            namespace=os.getenv("WATCH_NAMESPACE", "default"),
            request_timeout=int(os.getenv("KUBE_REQUEST_TIMEOUT", "30")),
            watch_timeout=int(os.getenv("KUBE_WATCH_TIMEOUT", "300")),
        )


@dataclass
class ControllerConfig:
    """Reconcile scheduling configuration."""

    resync_interval: int = 60  # seconds
    max_concurrent_reconciles: int = 5
    watch_enabled: bool = True

    # Exponential backoff configuration
    backoff_base_delay: float = 5  # base delay in seconds
    backoff_max_delay: float = 300  # max delay in seconds (5 minutes)
    backoff_jitter_factor: float = 0.1  # ±10% jitter

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            resync_interval=int(os.getenv("RESYNC_INTERVAL", "60")),
            max_concurrent_reconciles=int(os.getenv("MAX_CONCURRENT_RECONCILES", "5")),
            watch_enabled=os.getenv("WATCH_ENABLED", "true").lower() == "true",
            backoff_base_delay=float(os.getenv("BACKOFF_BASE_DELAY", "5")),
            backoff_max_delay=float(os.getenv("BACKOFF_MAX_DELAY", "300")),
            backoff_jitter_factor=float(os.getenv("BACKOFF_JITTER_FACTOR", "0.1")),
        )


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            level=os.getenv("LOG_LEVEL", "INFO").upper(),
            format=os.getenv("LOG_FORMAT", cls.format),
        )


@dataclass
class Config:
    """Main configuration object."""

    kubernetes: KubernetesConfig
    controller: ControllerConfig
    logging: LoggingConfig

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            kubernetes=KubernetesConfig.from_env(),
            controller=ControllerConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            kubernetes=KubernetesConfig(),
            controller=ControllerConfig(),
            logging=LoggingConfig(),
        )


# Global config instance
config: Optional[Config] = None


def load_config() -> Config:
    """Load configuration (singleton pattern)."""
    global config
    if config is None:
        config = Config.from_env()
    return config


def get_config() -> Config:
    """Get the current configuration."""
    if config is None:
        return load_config()
    return config


def reset_config() -> None:
    """Reset configuration (mainly for testing)."""
    global config
    config = None
