# panelauth HTTP layer.
# Created: 2026-10-19
#
# OAuth 2.1 endpoints, the API key subsystem and the resource access gate.
