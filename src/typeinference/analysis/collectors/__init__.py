from .base import EvidenceCollector, TypeNameResolver, null_logger
from .docblock import DocblockAnalyzer
from .names import ModuleBindings, SourceCatalog, collect_bindings
from .schema import SchemaAnalyzer, python_type_for_sql
from .static import DeclarationCollector, StaticCallSiteAnalyzer
from .trace import TraceAnalyzer, TraceRecorder, load_trace_records

__all__ = [
    "DeclarationCollector",
    "DocblockAnalyzer",
    "EvidenceCollector",
    "ModuleBindings",
    "SchemaAnalyzer",
    "SourceCatalog",
    "StaticCallSiteAnalyzer",
    "TraceAnalyzer",
    "TraceRecorder",
    "TypeNameResolver",
    "collect_bindings",
    "load_trace_records",
    "null_logger",
    "python_type_for_sql",
]
