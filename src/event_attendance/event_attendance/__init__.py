"""Event attendance package.

Organized by feature modules (attendance, validation, statistics, ...) with
service/repository layers. External systems (events, users, authorization,
QR and biometric verification) are reached through Protocols only.
"""
