from .approval import ApprovalPolicy, DeviceApprovalResolver, EmailApprovalRelay
from .login import LoginAutomaton, LoginOutcome

__all__ = ["ApprovalPolicy", "DeviceApprovalResolver", "EmailApprovalRelay", "LoginAutomaton", "LoginOutcome"]
