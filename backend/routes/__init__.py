"""DocQuery Routes"""
