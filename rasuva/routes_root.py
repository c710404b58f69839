# rasuva/routes_root.py
from flask import Blueprint, redirect

root_bp = Blueprint("root_bp", __name__)

@root_bp.get("/")
def root():
    # canonical landing: the import generations list
    return redirect("/api/imports", code=308)  # 308 keeps the HTTP method
