"""Services module for business logic and data operations.

Service classes take an AsyncSession and implement discovery, source
registry, caching, filtering, search orchestration and the background
scraping worker. Import them from their own modules.
"""
