"""DocQuery Services"""
