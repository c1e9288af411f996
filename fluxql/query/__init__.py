"""Query state: the fluent builder, predicate nodes and join clauses."""
