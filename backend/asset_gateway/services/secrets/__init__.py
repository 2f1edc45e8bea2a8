from .manager import EnvSecretSource, SecretSource, StaticSecretSource

__all__ = ["EnvSecretSource", "SecretSource", "StaticSecretSource"]
