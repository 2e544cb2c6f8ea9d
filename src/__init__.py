"""TickerLens core source package.

This package contains the extraction and canonicalization pipeline:
- document: DocumentNode protocol, synthetic trees and the HTML adapter
- scanner: Strategy pattern implementations for finding label/value pairs
- canonicalizer / sanitizer: label mapping and value keep/discard rules
- tables / transformer: table extraction and value normalization
- pipeline / merge: crawl records and their fold into ticker records
- store / service: async persistence and the crawl-merge-persist loop
- logger / exceptions: structured logging and the exception hierarchy
"""

__version__ = "1.0.0"
