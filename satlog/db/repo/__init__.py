from satlog.db.repo.user_data_repo import UserDataRepo

__all__ = ["UserDataRepo"]
