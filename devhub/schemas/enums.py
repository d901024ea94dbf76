from enum import Enum

class UserRole(str, Enum):
    none = ""
    student = "student"
    developer = "developer"
    mentor = "mentor"
    recruiter = "recruiter"

class ConnectionStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"

class ConnectionAction(str, Enum):
    accept = "accept"
    reject = "reject"

class MessageType(str, Enum):
    text = "text"
    image = "image"
    file = "file"

class GroupType(str, Enum):
    public = "public"
    private = "private"
