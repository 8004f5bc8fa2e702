# facturacion/services/fiscalapi/__init__.py
"""
Integración con FiscalAPI (PAC):

- client: cliente REST (personas, API keys, facturas de ingreso).
"""
