"""Manifest and lockfile parsers: file text in, dependency tree out."""
