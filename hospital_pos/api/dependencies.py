from fastapi import Request


# Everything below is created once in create_app() and hung off app.state.
def get_catalog(request: Request):
    return request.app.state.workflow.catalog


def get_workflow_service(request: Request):
    return request.app.state.workflow


def get_dashboard_repository(request: Request):
    return request.app.state.dashboard


def get_identity_provider(request: Request):
    return request.app.state.identity


def get_user_provisioning(request: Request):
    return request.app.state.provisioning
