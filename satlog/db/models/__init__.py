from satlog.db.models.user_data import UserData

__all__ = ["UserData"]
