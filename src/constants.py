"""Constants used across the operator."""

# Default controller name matched against GatewayClass spec.controllerName
DEFAULT_CONTROLLER_NAME = "sunet.se/gateway-operator"

# Finalizer placed on accepted GatewayClasses
GATEWAY_CLASS_FINALIZER = "gateway-exists-finalizer.gateway.networking.k8s.io"

# Labels carried by the generated Deployment/Service of a Gateway
OWNING_GATEWAY_NAME_LABEL = "gateway.sunet.se/owning-gateway-name"
OWNING_GATEWAY_NAMESPACE_LABEL = "gateway.sunet.se/owning-gateway-namespace"

# Suffixes of generated child resources (see utils.resolve_name)
DEPLOYMENT_SUFFIX = "-deployment"
SERVICE_SUFFIX = "-svc"

# Prefix of hashed child resource names
HASHED_NAME_PREFIX = "gw"

GATEWAY_API_GROUP = "gateway.networking.k8s.io"
