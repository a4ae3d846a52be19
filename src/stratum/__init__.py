"""
stratum: the write path of a table format for large analytic datasets.

## Layers
- stratum.core: zero-IO contracts (type model, promotion rules, schema compatibility
  checker, partition specs, serde, constants, versioning).
- stratum.io: per-task file writers, output file allocation, Parquet/Avro appenders,
  the commit coordinator, a local table/snapshot store, and the read path.

## Import DAG discipline
- stratum.core depends only on the standard library.
- stratum.io depends on stratum.core, pyarrow/polars, fastavro, pydantic, and loguru.
"""

__version__ = "0.1.0"
