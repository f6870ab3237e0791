"""
etfspine: ETF reference data as a relational schema and as a document schema.

The relational source (``etfspine.relational``) is the system of record; the
document target (``etfspine.documents``) re-expresses it as collections.
Everything the relational engine enforced and the document store cannot is
moved into ``etfspine.integrity``; ``etfspine.mapping`` explains the
translation and ``etfspine.migration`` moves the data.

Architecture::

    core/          errors, settings, logging, engines, ULIDs
    relational/    SQLAlchemy tables, constraints, triggers, sample data
    documents/     pydantic document models, collection specs, validators
    store/         DocumentStore protocol, in-memory and SQL-backed stores
    integrity/     write-path rules, DocumentService, IntegrityAuditor
    mapping/       entity registry, constraint translation, row transform, report
    migration/     MigrationRunner, count verification
    cli/           Typer application (``etfspine``)
"""

__version__ = "0.1.0"
