"""Configuration management for Easel"""

import os
from typing import Optional, List
from pathlib import Path
import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class EnvironmentSettings(BaseSettings):
    """Process-level settings read from EASEL_* environment variables"""
    model_config = SettingsConfigDict(env_prefix="EASEL_", env_file=".env", extra="ignore")

    config_path: str = "config.yaml"
    log_level: Optional[str] = None


class ModelSpecificConfig(BaseModel):
    """Chat model configuration"""
    api_key_env: Optional[str] = "OPENAI_API_KEY"
    base_url: Optional[str] = None
    model: str = "gpt-4o-mini"
    max_tokens: int = 1000
    temperature: float = 0.3
    timeout_seconds: float = 60.0


class ModelConfig(BaseModel):
    """Language model configuration"""
    classifier: ModelSpecificConfig = Field(default_factory=ModelSpecificConfig)
    assessment: ModelSpecificConfig = Field(default_factory=ModelSpecificConfig)


class EmbeddingConfig(BaseModel):
    """Embedding configuration"""
    provider: str = "openai"
    api_key_env: Optional[str] = "OPENAI_API_KEY"
    base_url: Optional[str] = None
    model: str = "text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 100
    timeout_seconds: float = 30.0


class ArtifactConfig(BaseModel):
    """Image backend configuration"""
    provider: str = "mock"  # "mock" or "openai"
    api_key_env: Optional[str] = "OPENAI_API_KEY"
    base_url: Optional[str] = None
    default_model: str = "dall-e-3"
    edit_model: str = "dall-e-2"
    default_size: str = "1024x1024"
    timeout_seconds: float = 120.0
    mock_delay_seconds: float = 0.0


class VectorDBConfig(BaseModel):
    """Vector database configuration"""
    provider: str = "qdrant"
    location: Optional[str] = ":memory:"  # ":memory:" or a local path; None uses host/port
    host: str = "localhost"
    port: int = 6333
    collection_name: str = "styles"
    distance: str = "cosine"  # "cosine", "dot", "euclid" or "manhattan"
    return_vectors: bool = True
    distance_scale_factor: float = 10000.0
    candidate_multiplier: int = 2
    seed_on_startup: bool = True
    force_reseed: bool = False


class RetrievalConfig(BaseModel):
    """Retrieval augmentation configuration"""
    limit: int = 3
    min_similarity: float = 0.6
    competitive_ratio: float = 0.8
    relaxed_similarity_factor: float = 0.8


class CriticConfig(BaseModel):
    """Quality assessment configuration"""
    pass_threshold: float = 0.7
    max_retry_count: int = 3
    use_external_assessment: bool = False
    perturbation_low: float = -0.09
    perturbation_high: float = 0.21


class ServerConfig(BaseModel):
    """HTTP server configuration"""
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"]
    )


class LoggingConfig(BaseModel):
    """Logging configuration"""
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class Config(BaseModel):
    """Main configuration"""
    models: ModelConfig = Field(default_factory=ModelConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    artifacts: ArtifactConfig = Field(default_factory=ArtifactConfig)
    vector_db: VectorDBConfig = Field(default_factory=VectorDBConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    critic: CriticConfig = Field(default_factory=CriticConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, config_path: str = "config.yaml") -> "Config":
        """Load configuration from YAML file"""
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_file, 'r') as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    def get_api_key(self, model_type: str) -> Optional[str]:
        """
        Get API key for a configured client.

        Args:
            model_type: "classifier", "assessment", "embedding" or "artifacts"

        Returns:
            The key from the environment variable named in that section, if any
        """
        section = getattr(self.models, model_type, None) or getattr(self, model_type, None)
        env_name = getattr(section, "api_key_env", None)
        if env_name:
            return os.getenv(env_name)
        return None


# Global config instance
_config: Optional[Config] = None


def get_config(config_path: str = "config.yaml") -> Config:
    """Get or create global configuration instance"""
    global _config
    if _config is None:
        _config = Config.from_yaml(config_path)
    return _config


def reload_config(config_path: str = "config.yaml") -> Config:
    """Reload configuration from file"""
    global _config
    _config = Config.from_yaml(config_path)
    return _config
