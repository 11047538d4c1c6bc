"""
Decoupe Express - quote PDF generation for a laser-cutting workshop

Packages:
    core/     Shared configuration, paths, formatting and key-value storage
    forms/    Quote model, line normalization, totals, zones and PDF rendering
    agents/   Remote generation service, generation pipeline, drafts/history
    api/      Flask routes
"""
