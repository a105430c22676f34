"""
Utilidades compartidas
"""


def field_value(item, name):
    """Leer un campo de un dict o de un objeto (schema Pydantic, modelo, etc.)"""
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)
