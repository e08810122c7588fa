"""Encrypted backup export and import.

Usage:
    from horizen_vault.backup import ExportSelection, export_bundle, import_bundle

    bundle = export_bundle(vm, app_data, ExportSelection(api_keys={"openai"}), password)
    result = import_bundle(vm, text, password)
"""

# Models
from .models import (
    APP_VERSION,
    EXPORT_VERSION,
    SECTION_NAMES,
    EncryptedSection,
    ExportBundle,
    ExportSelection,
    ImportResult,
    MergeStrategies,
    Section,
)

# Sealing and integrity
from .sealing import compute_hash, open_section, seal_section, verify_hash

# Export
from .exporter import bundle_to_json, export_bundle, export_filename, write_export

# Import
from .importer import (
    apply_sections,
    available_sections,
    import_bundle,
    parse_bundle,
)

# Snapshots
from .snapshots import SnapshotInfo, SnapshotStore

__all__ = [
    # Models
    "EXPORT_VERSION",
    "APP_VERSION",
    "SECTION_NAMES",
    "Section",
    "EncryptedSection",
    "ExportBundle",
    "ExportSelection",
    "ImportResult",
    "MergeStrategies",
    # Sealing
    "seal_section",
    "open_section",
    "compute_hash",
    "verify_hash",
    # Export
    "export_bundle",
    "bundle_to_json",
    "export_filename",
    "write_export",
    # Import
    "parse_bundle",
    "import_bundle",
    "available_sections",
    "apply_sections",
    # Snapshots
    "SnapshotStore",
    "SnapshotInfo",
]
