"""Streamlit front end for ftpget."""
