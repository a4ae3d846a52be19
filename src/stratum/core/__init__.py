"""
Core package aggregator for stratum contracts (types, promotion, compatibility,
partitioning, serde, constants, versioning).

## Contracts (single source of truth)
- Types: closed primitive/nested type model with ID-carrying fields and Schema.
- Promotion: explicit table of lossless primitive widenings.
- Compat: write/read compatibility diagnostics between two schemas, matched by field id.
- Partitioning: PartitionSpec, transforms, and the mutable PartitionKey accumulator.
- Serde: schema JSON shape and JSON-friendly value conversion.
- Constants/Versioning/Errors: table property names and defaults, metadata format
  version, core exceptions.

## Notes
- Zero-IO policy: stdlib only; no file or network IO.
- stratum.io builds on these contracts and must be the only layer that touches storage.

## Examples
```python
from stratum.core.compat import write_compatibility_errors
from stratum.core.types import INT, FLOAT, Schema, StructType, optional, required

write = Schema(required(0, "nested", StructType.of(optional(1, "from_field", INT))))
read = Schema(required(0, "nested", StructType.of(required(1, "to_field", FLOAT))))
write_compatibility_errors(read, write)
# ['nested.to_field should be required, but is optional',
#  'nested.to_field: int cannot be promoted to float']
```
"""
