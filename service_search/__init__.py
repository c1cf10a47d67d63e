"""
Search Service package.

This package validates search and save requests against declarative field
rules and compiles accepted filters into parameterized query conditions. It
provides:

- app.main: API surface for favorites search/validation and health.
- app.rules: Rule model, preparation, validation and custom validators.
- app.query: Filter condition builder, condition composer and order-by compiler.
- app.request: Extraction of declared fields from request parameter bags.

Guidelines:
- Rule maps are static per endpoint; prepare them once.
- Nothing here executes SQL; queries are handed to a query builder.
"""
