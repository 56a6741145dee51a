"""Service layer for certificate export.

Services keep routes and the CLI thin:
    Routes / CLI -> Services (orchestration, errors) -> Rendering (template,
    capture, packaging)

Services should:
- Own the export pipeline's error handling and logging
- Return dataclasses, not Pydantic schema objects
- Not contain HTTP-specific logic (status codes, response formatting)
"""
