# ==============================================
# Elasticsearch Batch Emitter
# ==============================================
#
# Package Structure:
#
# elastic_emitter/
# ├── normalization/    # Coerce record attributes before buffering
# ├── storage/          # Bulk buffer, Elasticsearch client, index template
# ├── schema/           # Index template definition (JSON)
# ├── config.py         # Configuration management
# ├── emitter.py        # ElasticEmitter, the class hosts talk to
# ├── logging_setup.py  # Logging configuration for the CLI
# └── cli.py            # Command line entry point
#
# ==============================================

from elastic_emitter.config import AwsCredentials, EmitterConfig, get_config
from elastic_emitter.emitter import ElasticEmitter

__version__ = "0.1.0"

__all__ = ["AwsCredentials", "EmitterConfig", "ElasticEmitter", "get_config"]
