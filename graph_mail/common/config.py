GRAPH_DELIVERY_METHOD = "msgraph"

ENV_TENANT_ID = "MSGRAPH_TENANT_ID"
ENV_CLIENT_ID = "MSGRAPH_CLIENT_ID"
ENV_CLIENT_SECRET = "MSGRAPH_CLIENT_SECRET"
ENV_SENDER_EMAIL = "MSGRAPH_SENDER_EMAIL"
ENV_SENDER_NAME = "MSGRAPH_SENDER_NAME"
ENV_SAVE_TO_SENT_ITEMS = "MSGRAPH_SAVE_TO_SENT_ITEMS"
ENV_DELIVERY_METHOD = "EMAIL_DELIVERY_METHOD"
