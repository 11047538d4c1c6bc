"""Quote documents: normalization, totals, validation and PDF rendering.

Key exports:
    normalize()         - Reconcile raw line items into NormalizedLineItem rows
    calculate_totals()  - Subtotal / global discount / TVA / TTC from raw fields
    validate()          - Required-field checks, returns error dicts
    ZoneStore           - Persisted overlay zone configuration
    BackgroundLibrary   - Uploaded letterhead (PNG/JPEG/PDF)
    QuoteRenderer       - Basic layout or zone overlay on a background
    from_devis()        - Convert stored devis records to a QuoteDocument
"""
