"""
Document workflow module.

Scope:
- Evidence uploads (PDF) with a role-ordered approval chain: Faculty -> HOD -> Coordinator
- Per-document, append-only approval history
- Role-scoped review queues and per-accreditation-body reports (PDF booklet, CSV index)
"""
