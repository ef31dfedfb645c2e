# scripts/__init__.py
