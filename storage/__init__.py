"""
Storage Package.

Persistence of form submissions.

Modules:
- models/: ORM models
- repositories/: Data access layer
- properties: Property bag JSON encoding
- resources: Binary resource references and store
"""
