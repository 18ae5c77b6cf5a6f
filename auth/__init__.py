"""auth/ -- Authentication and authorization package for the staff portal.

Layer rule: auth/ imports core/ (the kernel) and cache/, nothing else.
It does NOT import from api/, nav/, or client/.
api/ and nav/ import from auth/, not the other way around.
"""
