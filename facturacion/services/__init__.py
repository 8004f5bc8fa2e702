# facturacion/services/__init__.py
"""
Servicios de dominio para facturación CFDI:

- secret_codec: cifrado versionado de contraseña CSD y API key.
- storage: descarga de archivos CSD desde el storage fiscal.
- locks: lock consultivo por pago durante el timbrado.
- provisioning: alta de la clínica en FiscalAPI y emisión de API keys.
- invoicing: construcción y timbrado de la factura de un pago.

El cliente HTTP de FiscalAPI vive en facturacion/services/fiscalapi/.
"""
