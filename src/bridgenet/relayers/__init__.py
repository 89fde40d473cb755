"""
Relayer configuration.

Provides:

- Per-kind relay config schemas with named setters for live fields
- Materialization of templates into run-scoped config files
- The standard relayer set of a bridged network
"""

from .materialize import (
    CONFIG_FILE_NAMES,
    LiveValues,
    RelayerSpec,
    SigningKey,
    apply_live_values,
    define_relayers,
    load_template,
    materialize,
    render,
)
from .schemas import (
    BeaconRelayConfig,
    BeefyRelayConfig,
    ExecutionRelayConfig,
    RelayConfig,
    SolochainRelayConfig,
    parse_relay_config,
)

__all__ = [
    # Schemas
    "BeaconRelayConfig",
    "BeefyRelayConfig",
    "ExecutionRelayConfig",
    "SolochainRelayConfig",
    "RelayConfig",
    "parse_relay_config",
    # Materialization
    "CONFIG_FILE_NAMES",
    "LiveValues",
    "RelayerSpec",
    "SigningKey",
    "apply_live_values",
    "define_relayers",
    "load_template",
    "materialize",
    "render",
]
