"""
Services package for the Firefly Tiny Homes Quote Builder.
Catalog loading, pricing, selection state, quote assembly and PDF rendering.
"""
