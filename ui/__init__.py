# ui - PyQt5 views
