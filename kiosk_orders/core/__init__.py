"""Order lifecycle core: errors, lifecycle engine, delivery collaborators, scheduling."""
