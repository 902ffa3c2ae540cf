"""Pacote config: carregamento e validação das configurações do sidecar."""
