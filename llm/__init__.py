from .gateway import AIGatewayClient, GatewayConfig, get_gateway, load_gateway_config

__all__ = ["AIGatewayClient", "GatewayConfig", "get_gateway", "load_gateway_config"]
