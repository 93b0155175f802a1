"""Domain layer: entities, value objects, rules, exceptions and ports."""
