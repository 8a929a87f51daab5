"""
Sidey CMS API package.

This package provides a FastAPI application serving multi-tenant portfolio
sites (profile, collections, gallery, posts, comments, settings) with
relational-store and blob-store abstractions so the same code runs against
in-memory backends for tests and Postgres/S3 in production.
"""
