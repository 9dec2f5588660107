"""Evidence collection: data model, registry, type grammar and collectors."""
